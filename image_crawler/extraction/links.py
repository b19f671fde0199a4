"""
"Next page" link discovery.
"""

from bs4 import BeautifulSoup

from image_crawler.config import NEXT_LINK_TEXTS
from image_crawler.utils.url import to_absolute

_BS4_PARSER = "lxml"


def find_next_url(html: str | BeautifulSoup, current_url: str) -> str | None:
    """
    Return the absolute URL of the page after *current_url*, or ``None``.

    Priority (first match wins):
      1. ``<a rel="next">``
      2. ``a.next`` / ``.pagination a.next``
      3. an ``<a>`` whose whole text is one of :data:`NEXT_LINK_TEXTS`
         (case-insensitive)
    """
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, _BS4_PARSER)

    # rel is a multi-valued attribute, so rel="next prefetch" matches too
    rel_next = soup.find("a", rel="next", href=True)
    if rel_next is not None:
        return to_absolute(rel_next["href"], current_url)

    class_next = soup.select_one("a.next[href], .pagination a.next[href]")
    if class_next is not None:
        return to_absolute(class_next["href"], current_url)

    for anchor in soup.find_all("a", href=True):
        text = anchor.get_text().strip().lower()
        if text in NEXT_LINK_TEXTS:
            return to_absolute(anchor["href"], current_url)
    return None
