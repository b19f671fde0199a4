"""
HTTP session and header profiles for the image crawler.

Provides:
* A ``requests.Session`` with retry logic on 5xx and a connection pool
  large enough for the maximum download concurrency
* Separate header profiles for HTML pages and image downloads
* Case-insensitive merging of caller-supplied headers (caller wins)
"""

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from image_crawler.config import (
    ACCEPT_LANGUAGE,
    CONCURRENCY_LIMITS,
    CONNECT_TIMEOUT,
    DEFAULT_USER_AGENT,
    HTML_ACCEPT,
    IMAGE_ACCEPT,
    MAX_RETRIES,
)
from image_crawler.errors import FetchError
from image_crawler.utils.url import origin_url, same_origin


def build_session() -> requests.Session:
    """Return a ``requests.Session`` with retry logic and keep-alive."""
    session = requests.Session()
    retry = Retry(
        total=MAX_RETRIES,
        backoff_factor=0.5,
        status_forcelist=[500, 502, 503, 504],
        allowed_methods=["GET"],
        raise_on_status=False,
    )
    pool = CONCURRENCY_LIMITS[1] * 2
    adapter = HTTPAdapter(
        max_retries=retry,
        pool_connections=pool,
        pool_maxsize=pool,
    )
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session


def _common_headers() -> dict[str, str]:
    return {
        "user-agent": DEFAULT_USER_AGENT,
        "accept-language": ACCEPT_LANGUAGE,
    }


def html_headers() -> dict[str, str]:
    """Headers used when fetching HTML pages."""
    headers = _common_headers()
    headers["accept"] = HTML_ACCEPT
    return headers


def image_headers(image_url: str, referer: str = "") -> dict[str, str]:
    """Headers used when downloading an image.

    *referer* is the page the image was found from; when empty the
    image's own origin is used.
    """
    referer = referer or origin_url(image_url)
    headers = _common_headers()
    headers.update({
        "accept": IMAGE_ACCEPT,
        "sec-fetch-dest": "image",
        "sec-fetch-mode": "no-cors",
        "sec-fetch-site": "same-origin" if same_origin(image_url, referer) else "cross-site",
        "referer": referer,
    })
    return headers


def merge_headers(base: dict[str, str], extra: dict | None) -> dict[str, str]:
    """Merge *extra* over *base*; keys are lower-cased so caller values win
    regardless of case.  ``None`` values are skipped."""
    merged = {str(k).lower(): v for k, v in (base or {}).items()}
    if extra:
        for key, value in extra.items():
            if value is None:
                continue
            merged[str(key).lower()] = str(value)
    return merged


def request_timeout(total: float) -> tuple[float, float]:
    """``(connect, read)`` timeout pair bounded by *total* seconds."""
    return min(CONNECT_TIMEOUT, total), total


def fetch_page(
    session: requests.Session,
    url: str,
    timeout: float,
    headers: dict | None = None,
) -> str:
    """GET an HTML page and return its decoded text.

    Raises :class:`FetchError` on transport errors, timeouts and non-2xx
    responses.
    """
    try:
        resp = session.get(
            url,
            headers=merge_headers(html_headers(), headers),
            timeout=request_timeout(timeout),
            allow_redirects=True,
        )
    except requests.RequestException as exc:
        raise FetchError(url, exc) from exc
    if not resp.ok:
        raise FetchError(url, status=resp.status_code)
    return resp.text
