"""
Static image URL extraction via BeautifulSoup.

Covers ``<img>`` sources and lazy-load attributes, ``srcset`` /
``<picture>`` candidates, images hidden inside ``<noscript>``, inline
``background-image`` styles and lazy-loading containers that are not
``<img>`` tags.
"""

import re
from typing import Iterable, Iterator

from bs4 import BeautifulSoup

from image_crawler.config import IMG_SOURCE_ATTRS, LAZY_CONTAINER_ATTRS, SRCSET_ATTRS
from image_crawler.extraction.srcset import pick_from_srcset
from image_crawler.utils.log import log
from image_crawler.utils.url import to_absolute

_BS4_PARSER = "lxml"

_BG_IMAGE_RE = re.compile(
    r"""background-image\s*:\s*url\(\s*(['"]?)([^)'"]+)\1\s*\)""",
    re.I,
)


class DiscoveredUrls:
    """Insertion-ordered set of absolute image URLs.

    ``data:`` URIs and empty values are never stored.
    """

    def __init__(self, urls: Iterable[str] = ()) -> None:
        self._urls: dict[str, None] = {}
        self.update(urls)

    def add(self, url: str | None) -> bool:
        if not url or url.lower().startswith("data:") or url in self._urls:
            return False
        self._urls[url] = None
        return True

    def update(self, urls: Iterable[str | None]) -> int:
        """Add every URL in *urls*; returns how many were new."""
        return sum(1 for u in urls if self.add(u))

    def __contains__(self, url: object) -> bool:
        return url in self._urls

    def __iter__(self) -> Iterator[str]:
        return iter(self._urls)

    def __len__(self) -> int:
        return len(self._urls)

    def __repr__(self) -> str:
        return f"DiscoveredUrls({list(self._urls)!r})"


def _first_source(el, attrs: Iterable[str], page_url: str) -> str | None:
    """First attribute in *attrs* that resolves to a usable URL."""
    for attr in attrs:
        absolute = to_absolute(el.get(attr), page_url)
        if absolute:
            return absolute
    return None


def _srcset_of(el) -> str | None:
    for attr in SRCSET_ATTRS:
        value = el.get(attr)
        if value:
            return value
    return None


def image_source(img, page_url: str) -> str | None:
    """The one URL an ``<img>`` contributes.

    The best ``srcset`` candidate wins; otherwise the first usable source
    attribute in :data:`IMG_SOURCE_ATTRS` order.
    """
    best = pick_from_srcset(_srcset_of(img), page_url)
    if best:
        return best
    return _first_source(img, IMG_SOURCE_ATTRS, page_url)


def _scan_images(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> None:
    for img in soup.find_all("img"):
        found.add(image_source(img, page_url))


def _scan_pictures(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> None:
    """Best candidate of the last ``<source>`` with one, plus fallback ``<img src>``."""
    for picture in soup.find_all("picture"):
        best = None
        for source in picture.find_all("source"):
            candidate = pick_from_srcset(source.get("srcset"), page_url)
            if candidate:
                best = candidate
        found.add(best)
        img = picture.find("img")
        if img is not None:
            found.add(to_absolute(img.get("src"), page_url))


def _scan_noscript(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> None:
    for noscript in soup.find_all("noscript"):
        inner = "".join(str(child) for child in noscript.children)
        if not inner.strip():
            continue
        try:
            fragment = BeautifulSoup(inner, _BS4_PARSER)
        except Exception as exc:
            log.debug("Unparsable <noscript> block on %s: %s", page_url, exc)
            continue
        _scan_images(fragment, page_url, found)
        _scan_pictures(fragment, page_url, found)


def _scan_inline_styles(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> None:
    for el in soup.find_all(style=True):
        m = _BG_IMAGE_RE.search(str(el.get("style", "")))
        if m:
            found.add(to_absolute(m.group(2), page_url))


def _scan_lazy_containers(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> None:
    """Lazy-loading containers; ``<img>`` tags are handled by :func:`image_source`."""
    for el in soup.find_all(lambda tag: tag.name != "img"
                            and any(tag.has_attr(a) for a in LAZY_CONTAINER_ATTRS)):
        found.add(_first_source(el, LAZY_CONTAINER_ATTRS, page_url))


def extract_from_soup(soup: BeautifulSoup, page_url: str, found: DiscoveredUrls) -> DiscoveredUrls:
    """Run every image rule over an already-parsed document."""
    _scan_images(soup, page_url, found)
    _scan_pictures(soup, page_url, found)
    _scan_noscript(soup, page_url, found)
    _scan_inline_styles(soup, page_url, found)
    _scan_lazy_containers(soup, page_url, found)
    return found


def extract_images(
    html: str | bytes,
    page_url: str,
    found: DiscoveredUrls | None = None,
) -> DiscoveredUrls:
    """
    Parse *html* and add every image URL it references to *found*.

    Relative URLs are resolved against *page_url*; values that cannot be
    resolved are skipped.  Returns *found* (a new set when omitted).
    """
    if found is None:
        found = DiscoveredUrls()
    if isinstance(html, bytes):
        html = html.decode("utf-8", errors="replace")
    try:
        soup = BeautifulSoup(html, _BS4_PARSER)
    except Exception as exc:
        log.warning("[ERR] Could not parse HTML from %s: %s", page_url, exc)
        return found
    return extract_from_soup(soup, page_url, found)
