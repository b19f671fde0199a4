"""
Pagination resolution: pattern expansion or same-origin "next" link following.
"""

import time

import requests

from image_crawler.config import DEFAULT_START_PAGE, CrawlJob
from image_crawler.errors import FetchError
from image_crawler.extraction.links import find_next_url
from image_crawler.session import fetch_page
from image_crawler.utils.log import log
from image_crawler.utils.url import same_origin

PAGE_PLACEHOLDER = "{page}"


def expand_pattern(
    pattern: str,
    start_page: int | None = DEFAULT_START_PAGE,
    end_page: int | None = None,
    max_pages: int = 10,
) -> list[str]:
    """
    Substitute ``{page}`` with every integer in ``[start_page, end_page]``.

    ``end_page`` defaults to ``start_page + max_pages - 1``.  A pattern
    without the placeholder cannot be expanded and yields the literal
    pattern as a single page.  No network access.
    """
    if PAGE_PLACEHOLDER not in pattern:
        log.warning("[PLAN] Page pattern has no %s placeholder: %s",
                    PAGE_PLACEHOLDER, pattern)
        return [pattern]
    start = int(start_page) if start_page is not None else DEFAULT_START_PAGE
    end = int(end_page) if end_page is not None else start + max_pages - 1
    return [pattern.replace(PAGE_PLACEHOLDER, str(p)) for p in range(start, end + 1)]


def follow_next_links(
    session: requests.Session,
    start_url: str,
    max_pages: int,
    timeout: float,
    delay: float = 0.0,
    headers: dict | None = None,
    sleep=time.sleep,
) -> list[str]:
    """
    Collect pages by following "next" links from *start_url*.

    Stops when no next link is found, the link leaves the start URL's
    origin, points back to a page already collected, a fetch fails, or
    *max_pages* pages have been collected.  A failure only truncates the
    list.  *delay* seconds are slept after every successful fetch that
    leads to another page.
    """
    pages: list[str] = []
    current = start_url
    while len(pages) < max_pages:
        pages.append(current)
        if len(pages) >= max_pages:
            break
        try:
            html = fetch_page(session, current, timeout, headers)
        except FetchError as exc:
            log.warning("[NEXT] Stopping pagination at %s: %s", current, exc)
            break

        try:
            nxt = find_next_url(html, current)
        except Exception as exc:
            log.warning("[NEXT] Could not parse %s: %s", current, exc)
            break
        if not nxt:
            log.debug("[NEXT] No next link on %s", current)
            break
        if not same_origin(nxt, start_url):
            log.info("[NEXT] Next link leaves origin, stopping: %s", nxt)
            break
        if nxt in pages:
            log.info("[NEXT] Next link loops back, stopping: %s", nxt)
            break
        log.debug("[NEXT] %s → %s", current, nxt)
        current = nxt
        if delay > 0:
            sleep(delay)
    return pages


def resolve_pages(job: CrawlJob, session: requests.Session, sleep=time.sleep) -> list[str]:
    """Return the ordered page list for *job*."""
    if job.page_pattern:
        return expand_pattern(job.page_pattern, job.start_page, job.end_page, job.max_pages)
    return follow_next_links(
        session,
        job.start_url,
        max_pages=job.max_pages,
        timeout=job.fetch_timeout,
        delay=job.page_delay,
        headers=job.headers,
        sleep=sleep,
    )
