"""
Bounded-concurrency image downloader.

A fixed pool of worker threads pulls indices from a shared cursor over
the materialised URL list; each worker finishes one download before
claiming the next.  Completion order is not guaranteed.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Sequence

import requests
from tqdm import tqdm

from image_crawler.config import DEFAULT_CONCURRENCY, DEFAULT_FETCH_TIMEOUT_MS, STREAM_CHUNK
from image_crawler.core.storage import NameRegistry, derive_filename, ensure_dir, stream_to_file
from image_crawler.errors import DownloadTimeout, FetchError
from image_crawler.session import image_headers, merge_headers, request_timeout
from image_crawler.utils.log import log


@dataclass(frozen=True)
class DownloadResult:
    url: str
    file: str

    def to_dict(self) -> dict[str, str]:
        return {"url": self.url, "file": self.file}


class _Cursor:
    """Thread-safe index over a fixed-length sequence."""

    def __init__(self, length: int) -> None:
        self._length = length
        self._next = 0
        self._lock = threading.Lock()

    def claim(self) -> int | None:
        with self._lock:
            if self._next >= self._length:
                return None
            index = self._next
            self._next += 1
            return index


def _deadline_chunks(resp: requests.Response, url: str, deadline: float, timeout: float) -> Iterator[bytes]:
    for chunk in resp.iter_content(chunk_size=STREAM_CHUNK):
        if time.monotonic() > deadline:
            raise DownloadTimeout(url, timeout)
        yield chunk


class DownloadScheduler:
    """Download a set of image URLs into one flat directory."""

    def __init__(
        self,
        session: requests.Session,
        output_dir: Path,
        concurrency: int = DEFAULT_CONCURRENCY,
        timeout_ms: int = DEFAULT_FETCH_TIMEOUT_MS,
        headers: dict | None = None,
        referer: str = "",
        registry: NameRegistry | None = None,
        show_progress: bool = False,
    ) -> None:
        self.session = session
        self.output_dir = output_dir
        self.concurrency = max(1, int(concurrency))
        self.timeout = timeout_ms / 1000
        self.headers = headers
        self.referer = referer
        self.registry = registry if registry is not None else NameRegistry()
        self.show_progress = show_progress
        self._results_lock = threading.Lock()
        self._stats = {"ok": 0, "err": 0}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, urls: Sequence[str]) -> list[DownloadResult]:
        """Download every URL; failures are logged and left out of the
        returned list."""
        urls = list(urls)
        ensure_dir(self.output_dir)
        if not urls:
            return []

        cursor = _Cursor(len(urls))
        saved: list[DownloadResult] = []
        workers = min(self.concurrency, len(urls))
        bar = tqdm(total=len(urls), desc="Downloading", unit="img",
                   dynamic_ncols=True, disable=not self.show_progress)

        with bar, ThreadPoolExecutor(max_workers=workers,
                                     thread_name_prefix="download") as pool:
            futures = [pool.submit(self._worker, urls, cursor, saved, bar)
                       for _ in range(workers)]
            for future in futures:
                future.result()

        log.info("Downloads finished. ok=%d  err=%d",
                 self._stats["ok"], self._stats["err"])
        return saved

    def download(self, url: str) -> str:
        """Fetch one image and save it; returns the saved filename.

        Raises :class:`FetchError`, :class:`DownloadTimeout` or
        ``OSError``.
        """
        headers = merge_headers(image_headers(url, self.referer), self.headers)
        deadline = time.monotonic() + self.timeout
        try:
            resp = self.session.get(
                url,
                headers=headers,
                timeout=request_timeout(self.timeout),
                stream=True,
            )
        except requests.RequestException as exc:
            raise FetchError(url, exc) from exc

        with resp:
            if not resp.ok:
                raise FetchError(url, status=resp.status_code)
            name = derive_filename(url, resp.headers.get("Content-Type"))
            final = self.registry.reserve(name)
            try:
                size = stream_to_file(
                    self.output_dir / final,
                    _deadline_chunks(resp, url, deadline, self.timeout),
                )
            except requests.RequestException as exc:
                raise FetchError(url, exc) from exc
        log.info("[SAVE] %s (%d bytes)", final, size)
        return final

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _worker(self, urls: Sequence[str], cursor: _Cursor,
                saved: list[DownloadResult], bar: tqdm) -> None:
        while True:
            index = cursor.claim()
            if index is None:
                return
            url = urls[index]
            try:
                final = self.download(url)
            except (FetchError, DownloadTimeout, OSError) as exc:
                log.warning("[ERR] Download failed: %s – %s", url, exc)
                self._count("err")
            except Exception:
                log.exception("[ERR] Unexpected error downloading %s", url)
                self._count("err")
            else:
                with self._results_lock:
                    saved.append(DownloadResult(url=url, file=final))
                self._count("ok")
            bar.update(1)

    def _count(self, key: str) -> None:
        with self._results_lock:
            self._stats[key] += 1
