"""
Extraction strategies.

Both strategies produce the same thing, the absolute image URLs of one
page, so the coordinator can swap them per page.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import requests

from image_crawler.extraction.headless import HeadlessExtractor
from image_crawler.extraction.images import extract_images
from image_crawler.session import fetch_page


class Extractor(Protocol):
    """Return the image URLs referenced by *page_url*."""

    def extract(self, page_url: str) -> list[str]: ...


class StaticExtractor:
    """Fetch the page over HTTP and parse it with BeautifulSoup.

    Raises :class:`~image_crawler.errors.FetchError` when the page cannot
    be fetched so the caller can decide whether to fall back.
    """

    def __init__(self, session: requests.Session, timeout: float, headers: dict | None = None):
        self._session = session
        self._timeout = timeout
        self._headers = headers

    def extract(self, page_url: str) -> list[str]:
        html = fetch_page(self._session, page_url, self._timeout, self._headers)
        return list(extract_images(html, page_url))


class DisabledExtractor:
    def extract(self, page_url: str) -> list[str]:
        return []


@dataclass(frozen=True)
class ExtractorSelector:
    static: Extractor
    headless: Extractor | None = None

    @property
    def fallback_enabled(self) -> bool:
        return self.headless is not None

    def get(self, failed: bool) -> Extractor:
        """Static first; headless only after a failed static attempt and
        only when enabled."""
        if not failed:
            return self.static
        if self.headless is None:
            return DisabledExtractor()
        return self.headless


def build_selector(
    session: requests.Session,
    timeout: float,
    headers: dict | None = None,
    use_headless: bool = False,
    headless: HeadlessExtractor | None = None,
) -> ExtractorSelector:
    static = StaticExtractor(session, timeout, headers)
    if not use_headless:
        return ExtractorSelector(static=static)
    if headless is None:
        headless = HeadlessExtractor(timeout_ms=int(timeout * 1000), headers=headers)
    return ExtractorSelector(static=static, headless=headless)
