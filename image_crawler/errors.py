"""Exceptions raised by the image crawler."""


class CrawlerError(Exception):
    """Base class for crawler errors."""


class ConfigError(CrawlerError):
    """Raised for invalid job configuration; fatal before any work starts."""


class FetchError(CrawlerError):
    """Raised when a page or image fetch fails (transport error or non-2xx)."""

    def __init__(self, url: str, original: Exception | None = None, status: int | None = None):
        self.url = url
        self.original = original
        self.status = status
        if status is not None:
            reason = f"HTTP {status}"
        else:
            reason = str(original)
        super().__init__(f"fetch failed for {url}: {reason}")

    @property
    def reason(self) -> str:
        """Short reason code used in ``fallback`` progress events."""
        if self.status is not None:
            return f"http_{self.status}"
        return "fetch_error"


class DownloadTimeout(CrawlerError):
    """Raised when a single image download exceeds its time budget."""

    def __init__(self, url: str, timeout: float):
        self.url = url
        self.timeout = timeout
        super().__init__(f"download of {url} exceeded {timeout:.1f}s")


class HeadlessUnavailable(CrawlerError):
    """Raised when no headless browser can be started."""
