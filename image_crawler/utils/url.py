"""
URL resolution and origin helpers.
"""

import urllib.parse

_DEFAULT_PORTS = {"http": 80, "https": 443}


def to_absolute(raw: str | None, page_url: str) -> str | None:
    """
    Resolve *raw* against *page_url* and return the absolute URL.

    Returns ``None`` for empty values, ``data:`` URIs and anything that
    cannot be parsed into an http(s) URL.  Malformed values never raise.
    """
    if not raw:
        return None
    raw = raw.strip()
    if not raw or raw.lower().startswith("data:"):
        return None
    try:
        absolute = urllib.parse.urljoin(page_url, raw)
        parsed = urllib.parse.urlparse(absolute)
        # Accessing .port validates the netloc
        parsed.port
    except ValueError:
        return None
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        return None
    return urllib.parse.urlunparse(parsed._replace(fragment=""))


def origin(url: str) -> tuple[str, str, int | None]:
    """Return the ``(scheme, host, port)`` origin tuple of *url*.

    Default ports are made explicit so ``https://a`` and ``https://a:443``
    compare equal.
    """
    parsed = urllib.parse.urlparse(url)
    scheme = parsed.scheme.lower()
    host = (parsed.hostname or "").lower()
    try:
        port = parsed.port
    except ValueError:
        port = None
    if port is None:
        port = _DEFAULT_PORTS.get(scheme)
    return scheme, host, port


def same_origin(a: str, b: str) -> bool:
    return origin(a) == origin(b)


def origin_url(url: str) -> str:
    """``scheme://netloc`` of *url*, used as a fallback Referer."""
    parsed = urllib.parse.urlparse(url)
    return f"{parsed.scheme}://{parsed.netloc}"
