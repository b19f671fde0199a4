"""
Command-line interface for the image crawler.
"""

import argparse
import json
import logging
import queue
import sys
import threading
import time

from tqdm import tqdm

from image_crawler.config import (
    CONCURRENCY_LIMITS,
    DEFAULT_CONCURRENCY,
    DEFAULT_FETCH_TIMEOUT_MS,
    DEFAULT_MAX_PAGES,
    DEFAULT_OUTPUT_DIR,
    DEFAULT_PAGE_DELAY_MS,
    DEFAULT_START_PAGE,
    FETCH_TIMEOUT_LIMITS,
    MAX_PAGES_LIMITS,
    PAGE_DELAY_LIMITS,
    CrawlJob,
    clamp_option,
)
from image_crawler.core.crawler import Crawler
from image_crawler.core.progress import (
    PageDoneEvent,
    PlanEvent,
    ProgressEvent,
    QueueSink,
    result_line,
    sse_line,
)
from image_crawler.errors import ConfigError
from image_crawler.utils.log import setup_logging, log


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Discover images on one or more pages of a site and "
                    "download them into a single directory.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Examples:\n"
            "  python -m image_crawler https://example.com/gallery\n"
            "  python -m image_crawler https://example.com/gallery --max-pages 5\n"
            "  python -m image_crawler https://example.com "
            "--page-pattern 'https://example.com/list/{page}' --start-page 2 --end-page 4\n"
            "  python -m image_crawler https://example.com --headless "
            "--header 'Cookie: session=abc'\n"
        ),
    )
    parser.add_argument("url", help="Start URL (http or https)")
    parser.add_argument(
        "--out-dir", default=DEFAULT_OUTPUT_DIR,
        help="Output directory; relative paths go under the storage root "
             f"(default: {DEFAULT_OUTPUT_DIR})",
    )
    parser.add_argument(
        "--concurrency", default=DEFAULT_CONCURRENCY,
        help=f"Parallel downloads, {CONCURRENCY_LIMITS[0]}-{CONCURRENCY_LIMITS[1]} "
             f"(default: {DEFAULT_CONCURRENCY})",
    )
    parser.add_argument(
        "--max-pages", default=DEFAULT_MAX_PAGES,
        help=f"Maximum pages to visit, {MAX_PAGES_LIMITS[0]}-{MAX_PAGES_LIMITS[1]} "
             f"(default: {DEFAULT_MAX_PAGES})",
    )
    parser.add_argument(
        "--page-delay", default=DEFAULT_PAGE_DELAY_MS, metavar="MS",
        help=f"Delay between pages in ms, {PAGE_DELAY_LIMITS[0]}-{PAGE_DELAY_LIMITS[1]} "
             f"(default: {DEFAULT_PAGE_DELAY_MS})",
    )
    parser.add_argument(
        "--timeout", default=DEFAULT_FETCH_TIMEOUT_MS, metavar="MS",
        help=f"Per-request timeout in ms, {FETCH_TIMEOUT_LIMITS[0]}-{FETCH_TIMEOUT_LIMITS[1]} "
             f"(default: {DEFAULT_FETCH_TIMEOUT_MS})",
    )
    parser.add_argument(
        "--page-pattern",
        help="URL pattern with a {page} placeholder; disables next-link following",
    )
    parser.add_argument("--start-page", type=int, default=DEFAULT_START_PAGE,
                        help=f"First page number for --page-pattern (default: {DEFAULT_START_PAGE})")
    parser.add_argument("--end-page", type=int,
                        help="Last page number for --page-pattern "
                             "(default: start page + max pages - 1)")
    parser.add_argument(
        "--headless", action="store_true",
        help="Render pages that fail to load in a headless browser",
    )
    parser.add_argument(
        "--header", action="append", default=[], metavar="'NAME: VALUE'",
        help="Extra request header; may be repeated",
    )
    parser.add_argument(
        "--headers-json", metavar="JSON",
        help="Extra request headers as a JSON object",
    )
    parser.add_argument(
        "--json-events", action="store_true",
        help="Print progress events as server-sent-event lines instead of a progress bar",
    )
    parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging")
    parser.add_argument("--log-file", help="Write detailed logs to this file (always at DEBUG level)")
    return parser.parse_args(argv)


def parse_headers(pairs: list[str], raw_json: str | None = None) -> dict[str, str]:
    """Combine ``--headers-json`` and repeated ``--header`` values.

    Raises :class:`ConfigError` on malformed input.
    """
    headers: dict[str, str] = {}
    if raw_json:
        try:
            data = json.loads(raw_json)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"--headers-json is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigError("--headers-json must be a JSON object")
        headers.update({str(k): str(v) for k, v in data.items() if v is not None})
    for pair in pairs:
        name, sep, value = pair.partition(":")
        if not sep or not name.strip():
            raise ConfigError(f"header must look like 'Name: value': {pair!r}")
        headers[name.strip()] = value.strip()
    return headers


def build_job(args: argparse.Namespace, on_progress=None) -> CrawlJob:
    """Clamp numeric options and validate the start URL."""
    return CrawlJob.create(
        args.url,
        out_dir=args.out_dir,
        concurrency=clamp_option(args.concurrency, CONCURRENCY_LIMITS, DEFAULT_CONCURRENCY),
        max_pages=clamp_option(args.max_pages, MAX_PAGES_LIMITS, DEFAULT_MAX_PAGES),
        page_delay_ms=clamp_option(args.page_delay, PAGE_DELAY_LIMITS, DEFAULT_PAGE_DELAY_MS),
        fetch_timeout_ms=clamp_option(args.timeout, FETCH_TIMEOUT_LIMITS, DEFAULT_FETCH_TIMEOUT_MS),
        page_pattern=args.page_pattern or None,
        start_page=args.start_page,
        end_page=args.end_page,
        headers=parse_headers(args.header, args.headers_json),
        use_headless=args.headless,
        on_progress=on_progress,
    )


class PageProgressBar:
    """Progress sink that advances a ``tqdm`` bar once per visited page."""

    def __init__(self) -> None:
        self.bar: tqdm | None = None

    def __call__(self, event: ProgressEvent) -> None:
        if isinstance(event, PlanEvent):
            self.bar = tqdm(total=event.page_count, desc="Pages", unit="page", dynamic_ncols=True)
        elif isinstance(event, PageDoneEvent) and self.bar is not None:
            self.bar.update(1)
            self.bar.set_postfix(added=event.added)
            if event.index == event.total:
                self.close()

    def close(self) -> None:
        if self.bar is not None:
            self.bar.close()
            self.bar = None


class EventStreamWriter:
    """Relay progress events to *stream* as server-sent-event lines.

    The crawler pushes into a bounded :class:`QueueSink` and never waits
    on the stream; a background thread drains the queue.  When the
    consumer falls behind, the oldest buffered events are dropped.
    """

    def __init__(self, stream=None, maxsize: int = 256) -> None:
        self.sink = QueueSink(maxsize=maxsize)
        self._stream = stream if stream is not None else sys.stdout
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._pump, name="events", daemon=True)

    def __call__(self, event: ProgressEvent) -> None:
        self.sink(event)

    def start(self) -> "EventStreamWriter":
        self._thread.start()
        return self

    def write(self, payload: ProgressEvent | dict) -> None:
        self._stream.write(sse_line(payload))
        self._stream.flush()

    def close(self) -> None:
        """Stop the pump and flush whatever is still buffered, in order."""
        self._stop.set()
        if self._thread.is_alive():
            self._thread.join()
        for event in self.sink.drain():
            self.write(event)
        if self.sink.dropped:
            log.warning("[ERR] %d progress event(s) dropped by a slow consumer",
                        self.sink.dropped)

    def _pump(self) -> None:
        while not self._stop.is_set():
            try:
                event = self.sink.get(timeout=0.1)
            except queue.Empty:
                continue
            self.write(event)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    setup_logging(debug=args.debug, log_file=args.log_file)
    if args.debug:
        logging.getLogger("urllib3").setLevel(logging.DEBUG)

    progress_bar = writer = None
    if args.json_events:
        sink = writer = EventStreamWriter()
    else:
        sink = progress_bar = PageProgressBar()

    try:
        job = build_job(args, on_progress=sink)
    except ConfigError as exc:
        log.error("[ERR] %s", exc)
        if writer is not None:
            writer.write({"type": "error", "error": str(exc)})
        sys.exit(2)

    if writer is not None:
        writer.start()
    t0 = time.monotonic()
    try:
        result = Crawler(job, show_progress=not args.json_events).run()
    finally:
        if progress_bar is not None:
            progress_bar.close()
        if writer is not None:
            writer.close()
    log.info("Total elapsed time: %.1f s", time.monotonic() - t0)

    if args.json_events:
        sys.stdout.write(result_line(result.to_dict()))
    else:
        print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
