"""
Configuration constants and job options for the image crawler.
"""

import os
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from image_crawler.errors import ConfigError

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------
DEFAULT_OUTPUT_DIR = "images"
DEFAULT_CONCURRENCY = 5
DEFAULT_MAX_PAGES = 10
DEFAULT_PAGE_DELAY_MS = 500
DEFAULT_FETCH_TIMEOUT_MS = 15000
DEFAULT_START_PAGE = 1

# Root for relative output directories
STORAGE_ROOT = Path(os.environ.get("IMAGE_CRAWLER_STORAGE", "storage")).resolve()

# ---------------------------------------------------------------------------
# Option limits (inclusive)
# ---------------------------------------------------------------------------
CONCURRENCY_LIMITS = (1, 10)
MAX_PAGES_LIMITS = (1, 50)
PAGE_DELAY_LIMITS = (0, 2000)          # ms
FETCH_TIMEOUT_LIMITS = (1000, 60000)   # ms


def clamp_option(value, limits: tuple[int, int], default: int) -> int:
    """Coerce *value* to an int inside *limits*.

    Missing or unparsable values fall back to *default* before clamping,
    the same way the HTTP layer treats query-string options.
    """
    lo, hi = limits
    try:
        number = int(float(value)) if value not in (None, "") else default
    except (TypeError, ValueError):
        number = default
    return max(lo, min(hi, number))


# ---------------------------------------------------------------------------
# Networking
# ---------------------------------------------------------------------------
MAX_RETRIES = 2
CONNECT_TIMEOUT = 10.0        # seconds, capped by the job's fetch timeout
STREAM_CHUNK = 65536

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122 Safari/537.36 image-crawler"
)
ACCEPT_LANGUAGE = "zh-CN,zh;q=0.9,en;q=0.8"

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
IMAGE_ACCEPT = "image/avif,image/webp,image/apng,image/svg+xml,image/*,*/*;q=0.8"

# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

# <img> source attributes, highest priority first (lazy-load before src)
IMG_SOURCE_ATTRS = (
    "data-src",
    "data-original",
    "data-lazy",
    "data-url",
    "data-actualsrc",
    "src",
)

# Lazy-load attributes scanned on any element
LAZY_CONTAINER_ATTRS = ("data-src", "data-original")

SRCSET_ATTRS = ("srcset", "data-srcset")

# Link texts that mean "next page" (compared lower-cased and stripped)
NEXT_LINK_TEXTS = frozenset({"next", "下一页", "下一頁", "›", "»", ">"})

# ---------------------------------------------------------------------------
# Headless rendering
# ---------------------------------------------------------------------------
DEFAULT_SCROLL_STEPS = 12
DEFAULT_SCROLL_WAIT_MS = 500
HEADLESS_VIEWPORT = {"width": 1366, "height": 768}

# Browser channels tried in order; None is Playwright's bundled Chromium
HEADLESS_CHANNELS: tuple[str | None, ...] = (None, "chrome", "msedge")

# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------
PLACEHOLDER_FILENAME = "image"
# In-flight downloads; derived filenames never start with a dot
TEMP_PREFIX = "."
TEMP_SUFFIX = ".tmp"

IMAGE_EXTENSIONS = {
    "image/jpeg":               ".jpg",
    "image/jpg":                ".jpg",
    "image/pjpeg":              ".jpg",
    "image/png":                ".png",
    "image/gif":                ".gif",
    "image/webp":               ".webp",
    "image/svg+xml":            ".svg",
    "image/bmp":                ".bmp",
    "image/x-ms-bmp":           ".bmp",
    "image/avif":               ".avif",
    "image/tiff":               ".tiff",
    "image/x-icon":             ".ico",
    "image/vnd.microsoft.icon": ".ico",
}


# ---------------------------------------------------------------------------
# Job options
# ---------------------------------------------------------------------------

@dataclass
class CrawlJob:
    """Options for one crawl invocation.

    Numeric fields are expected to be clamped already (see
    :func:`clamp_option`); :meth:`create` validates the start URL and
    resolves the output directory.
    """

    start_url: str
    output_dir: Path
    concurrency: int = DEFAULT_CONCURRENCY
    max_pages: int = DEFAULT_MAX_PAGES
    page_delay_ms: int = DEFAULT_PAGE_DELAY_MS
    fetch_timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS
    page_pattern: str | None = None
    start_page: int = DEFAULT_START_PAGE
    end_page: int | None = None
    headers: dict[str, str] = field(default_factory=dict)
    use_headless: bool = False
    on_progress: Callable | None = None
    scroll_steps: int = DEFAULT_SCROLL_STEPS
    scroll_wait_ms: int = DEFAULT_SCROLL_WAIT_MS

    @property
    def page_delay(self) -> float:
        return self.page_delay_ms / 1000

    @property
    def fetch_timeout(self) -> float:
        return self.fetch_timeout_ms / 1000

    @classmethod
    def create(cls, url: str, out_dir: str | Path = DEFAULT_OUTPUT_DIR, **options) -> "CrawlJob":
        """Validate *url* and build a job; raises :class:`ConfigError`."""
        start_url = validate_start_url(url)
        return cls(start_url=start_url, output_dir=resolve_output_dir(out_dir), **options)


def validate_start_url(url: str) -> str:
    """Return *url* stripped if it is an absolute http(s) URL."""
    if not url or not isinstance(url, str):
        raise ConfigError("a start URL is required")
    url = url.strip()
    try:
        parsed = urllib.parse.urlparse(url)
    except ValueError as exc:
        raise ConfigError(f"invalid URL: {url!r}") from exc
    if parsed.scheme.lower() not in ("http", "https"):
        raise ConfigError(f"URL scheme must be http or https: {url!r}")
    if not parsed.netloc:
        raise ConfigError(f"URL has no host: {url!r}")
    return url


def resolve_output_dir(out_dir: str | Path) -> Path:
    """Relative directories live under :data:`STORAGE_ROOT`."""
    path = Path(out_dir or DEFAULT_OUTPUT_DIR)
    if path.is_absolute():
        return path
    return STORAGE_ROOT / path
