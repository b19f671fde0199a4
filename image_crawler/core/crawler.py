"""
Crawl job coordination.

Runs one job through its states:

    PLANNING → PAGING → DISCOVERING → DOWNLOADING → COMPLETED

``PAGING`` (fetching pages to follow "next" links) is skipped when a page
pattern is given.  Pages are visited strictly in order; a page that
cannot be fetched is skipped (optionally through the headless fallback)
and never fails the job.  Only configuration errors are fatal, and they
are raised before any state exists.
"""

import enum
import os
import time
from dataclasses import dataclass, field
from pathlib import Path

import requests

from image_crawler.config import CrawlJob
from image_crawler.core.downloader import DownloadResult, DownloadScheduler
from image_crawler.core.pagination import resolve_pages
from image_crawler.core.progress import (
    CompleteEvent,
    DiscoverEvent,
    ErrorEvent,
    FallbackEvent,
    PageDoneEvent,
    PageEvent,
    PlanEvent,
    ProgressEmitter,
    ScrollEvent,
)
from image_crawler.core.storage import NameRegistry, ensure_dir
from image_crawler.errors import FetchError
from image_crawler.extraction.headless import HeadlessExtractor
from image_crawler.extraction.images import DiscoveredUrls
from image_crawler.extraction.strategy import ExtractorSelector, build_selector
from image_crawler.session import build_session
from image_crawler.utils.log import log


class JobState(enum.Enum):
    PLANNING = "planning"
    PAGING = "paging"
    DISCOVERING = "discovering"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"


_ORDER = list(JobState)


@dataclass
class CrawlResult:
    count: int
    saved: list[DownloadResult] = field(default_factory=list)
    out_dir: str = ""

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "saved": [r.to_dict() for r in self.saved],
            "outDir": self.out_dir,
        }


def relative_out_dir(path: Path) -> str:
    """*path* relative to the working directory (absolute if impossible)."""
    try:
        return os.path.relpath(path, Path.cwd())
    except ValueError:
        return str(path)


class Crawler:
    """
    Coordinates pagination, extraction and download for one job.

    The discovered-URL set and the used-name registry belong to the
    instance and live exactly as long as the job.
    """

    def __init__(
        self,
        job: CrawlJob,
        session: requests.Session | None = None,
        selector: ExtractorSelector | None = None,
        sleep=time.sleep,
        show_progress: bool = False,
    ) -> None:
        self.job = job
        self.session = session or build_session()
        self.emitter = ProgressEmitter(job.on_progress)
        self.selector = selector or build_selector(
            self.session,
            job.fetch_timeout,
            headers=job.headers,
            use_headless=job.use_headless,
            headless=self._headless() if job.use_headless else None,
        )
        self.sleep = sleep
        self.show_progress = show_progress
        self.state = JobState.PLANNING
        self.pages: tuple[str, ...] = ()
        self.discovered = DiscoveredUrls()
        self.registry = NameRegistry()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> CrawlResult:
        try:
            return self._run()
        except Exception as exc:
            self.emitter.emit(ErrorEvent(message=str(exc)))
            raise

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self) -> CrawlResult:
        job = self.job
        ensure_dir(job.output_dir)
        log.info("Target URL       : %s", job.start_url)
        log.info("Output directory : %s", job.output_dir)

        if not job.page_pattern:
            self._advance(JobState.PAGING)
        self.pages = tuple(resolve_pages(job, self.session, sleep=self.sleep))
        log.info("[PLAN] %d page(s) planned", len(self.pages))
        self.emitter.emit(PlanEvent(page_count=len(self.pages)))

        self._advance(JobState.DISCOVERING)
        total = len(self.pages)
        for index, page_url in enumerate(self.pages, start=1):
            self._visit(index, total, page_url)
            if index < total and job.page_delay > 0:
                self.sleep(job.page_delay)

        urls = list(self.discovered)
        log.info("Discovered %d image(s)", len(urls))
        self.emitter.emit(DiscoverEvent(count=len(urls)))

        self._advance(JobState.DOWNLOADING)
        scheduler = DownloadScheduler(
            self.session,
            job.output_dir,
            concurrency=job.concurrency,
            timeout_ms=job.fetch_timeout_ms,
            headers=job.headers,
            referer=job.start_url,
            registry=self.registry,
            show_progress=self.show_progress,
        )
        saved = scheduler.run(urls)

        self._advance(JobState.COMPLETED)
        out_dir = relative_out_dir(job.output_dir)
        log.info("[DONE] Saved %d/%d image(s) in %s", len(saved), len(urls), out_dir)
        self.emitter.emit(CompleteEvent(saved_count=len(saved), output_directory=out_dir))
        return CrawlResult(count=len(urls), saved=saved, out_dir=out_dir)

    def _visit(self, index: int, total: int, page_url: str) -> None:
        """Extract one page; always ends with a ``page_done`` event."""
        log.info("[PAGE] %d/%d %s", index, total, page_url)
        self.emitter.emit(PageEvent(index=index, total=total, url=page_url))

        urls: list[str] = []
        try:
            urls = self.selector.get(failed=False).extract(page_url)
        except FetchError as exc:
            log.warning("[ERR] %s", exc)
            urls = self._fallback(exc.reason, page_url)
        except Exception as exc:
            log.warning("[ERR] Extraction failed on %s: %s", page_url, exc)
            urls = self._fallback("extract_error", page_url)

        added = self.discovered.update(urls)
        self.emitter.emit(PageDoneEvent(index=index, total=total, added=added))

    def _fallback(self, reason: str, page_url: str) -> list[str]:
        if not self.selector.fallback_enabled:
            return []
        log.info("[FALLBACK] %s on %s, rendering headless", reason, page_url)
        self.emitter.emit(FallbackEvent(reason=reason, url=page_url))
        try:
            return self.selector.get(failed=True).extract(page_url)
        except Exception as exc:
            log.warning("[HEADLESS] Fallback failed on %s: %s", page_url, exc)
            return []

    def _headless(self) -> HeadlessExtractor:
        return HeadlessExtractor(
            timeout_ms=self.job.fetch_timeout_ms,
            headers=self.job.headers,
            scroll_steps=self.job.scroll_steps,
            scroll_wait_ms=self.job.scroll_wait_ms,
            on_scroll=lambda step, total: self.emitter.emit(ScrollEvent(step=step, total=total)),
        )

    def _advance(self, state: JobState) -> None:
        if _ORDER.index(state) < _ORDER.index(self.state):
            raise RuntimeError(f"cannot move from {self.state.value} to {state.value}")
        log.debug("Job state: %s → %s", self.state.value, state.value)
        self.state = state


def crawl_images(url: str, **options) -> CrawlResult:
    """Validate options, run one job and return its result.

    Raises :class:`~image_crawler.errors.ConfigError` for an invalid
    start URL; every other failure is recovered inside the job.
    """
    job = CrawlJob.create(url, **options)
    return Crawler(job).run()
