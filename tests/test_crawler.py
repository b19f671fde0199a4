"""
End-to-end tests for the crawl coordinator with a mocked HTTP session.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from image_crawler.config import CrawlJob
from image_crawler.core.crawler import Crawler, JobState, crawl_images
from image_crawler.errors import ConfigError
from image_crawler.extraction.strategy import ExtractorSelector, StaticExtractor

START = "https://site.test/gallery"

GALLERY_HTML = """
<html><body>
  <img src="/a.png">
  <img data-src="/b.jpg" srcset="/b-1x.jpg 1x, /b-2x.jpg 2x">
</body></html>
"""


def _page_resp(text="", status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    return resp


def _image_resp(content_type="image/png"):
    resp = MagicMock()
    resp.status_code = 200
    resp.ok = True
    resp.headers = {"Content-Type": content_type}
    resp.iter_content.return_value = iter([b"imagebytes"])
    return resp


def _session(pages: dict, images=()):
    """Mock session serving HTML from *pages* and bytes for *images*."""
    session = MagicMock()

    def get(url, **kwargs):
        if kwargs.get("stream"):
            return _image_resp() if url in images else _page_resp(status=404)
        body = pages.get(url, 404)
        if isinstance(body, int):
            return _page_resp(status=body)
        return _page_resp(body)

    session.get.side_effect = get
    return session


class _CrawlerTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.out = Path(self._tmp.name) / "images"
        self.events = []

    def tearDown(self):
        self._tmp.cleanup()

    def _job(self, **kwargs):
        kwargs.setdefault("page_delay_ms", 0)
        kwargs.setdefault("fetch_timeout_ms", 5000)
        return CrawlJob(start_url=START, output_dir=self.out,
                        on_progress=lambda e: self.events.append(e.to_dict()), **kwargs)

    def _types(self):
        return [e["type"] for e in self.events]


class TestCrawlerScenarios(_CrawlerTestCase):
    def test_single_gallery_page(self):
        session = _session(
            {START: GALLERY_HTML},
            images={"https://site.test/a.png", "https://site.test/b-2x.jpg"},
        )
        crawler = Crawler(self._job(), session=session)
        result = crawler.run()

        self.assertEqual(self._types(), ["plan", "page", "page_done", "discover", "complete"])
        self.assertEqual(self.events[0], {"type": "plan", "pages": 1})
        self.assertEqual(self.events[1], {"type": "page", "index": 1, "total": 1, "url": START})
        self.assertEqual(self.events[2]["added"], 2)
        self.assertEqual(self.events[3], {"type": "discover", "count": 2})
        self.assertEqual(self.events[4]["saved"], 2)

        self.assertEqual(result.count, 2)
        self.assertEqual(sorted(r.file for r in result.saved), ["a.png", "b-2x.jpg"])
        self.assertEqual(sorted(p.name for p in self.out.iterdir()), ["a.png", "b-2x.jpg"])
        self.assertEqual(crawler.state, JobState.COMPLETED)

        as_dict = result.to_dict()
        self.assertEqual(set(as_dict), {"count", "saved", "outDir"})
        self.assertEqual(set(as_dict["saved"][0]), {"url", "file"})

    def test_downloads_send_start_url_as_referer(self):
        session = _session({START: '<img src="/a.png">'}, images={"https://site.test/a.png"})
        Crawler(self._job(), session=session).run()
        image_calls = [c for c in session.get.call_args_list if c.kwargs.get("stream")]
        self.assertEqual(len(image_calls), 1)
        self.assertEqual(image_calls[0].kwargs["headers"]["referer"], START)

    def test_follows_next_links(self):
        session = _session({
            START: '<img src="/1.png"><a rel="next" href="/gallery?page=2">Next</a>',
            "https://site.test/gallery?page=2": '<img src="/2.png"><img src="/1.png">',
        }, images={"https://site.test/1.png", "https://site.test/2.png"})
        result = Crawler(self._job(max_pages=5), session=session).run()

        self.assertEqual(self.events[0], {"type": "plan", "pages": 2})
        done = [e for e in self.events if e["type"] == "page_done"]
        self.assertEqual([e["added"] for e in done], [1, 1])
        self.assertEqual(result.count, 2)

    def test_pattern_skips_paging(self):
        pattern = "https://site.test/list/{page}"
        session = _session({
            "https://site.test/list/1": '<img src="/x.png">',
            "https://site.test/list/2": '<img src="/y.png">',
        }, images={"https://site.test/x.png", "https://site.test/y.png"})
        crawler = Crawler(self._job(page_pattern=pattern, start_page=1, end_page=2), session=session)
        states = []
        original = crawler._advance

        def record(state):
            states.append(state)
            original(state)

        crawler._advance = record
        result = crawler.run()

        self.assertNotIn(JobState.PAGING, states)
        self.assertEqual(states, [JobState.DISCOVERING, JobState.DOWNLOADING, JobState.COMPLETED])
        self.assertEqual(len(result.saved), 2)
        page_urls = [e["url"] for e in self.events if e["type"] == "page"]
        self.assertEqual(page_urls, ["https://site.test/list/1", "https://site.test/list/2"])

    def test_failed_page_without_headless(self):
        session = _session({START: 404})
        result = Crawler(self._job(), session=session).run()

        self.assertEqual(self._types(), ["plan", "page", "page_done", "discover", "complete"])
        self.assertEqual(self.events[2]["added"], 0)
        self.assertNotIn("fallback", self._types())
        self.assertEqual(result.count, 0)
        self.assertEqual(result.saved, [])

    def test_headless_fallback(self):
        session = _session({START: 404}, images={"https://site.test/rendered.png"})
        headless = MagicMock()
        headless.extract.return_value = ["https://site.test/rendered.png"]
        selector = ExtractorSelector(static=StaticExtractor(session, 5), headless=headless)

        result = Crawler(self._job(), session=session, selector=selector).run()

        self.assertEqual(
            self._types(),
            ["plan", "page", "fallback", "page_done", "discover", "complete"],
        )
        self.assertEqual(self.events[2], {"type": "fallback", "reason": "http_404", "url": START})
        self.assertEqual(self.events[3]["added"], 1)
        headless.extract.assert_called_once_with(START)
        self.assertEqual([r.file for r in result.saved], ["rendered.png"])

    def test_headless_not_used_when_static_succeeds(self):
        session = _session({START: "<p>no images</p>"})
        headless = MagicMock()
        selector = ExtractorSelector(static=StaticExtractor(session, 5), headless=headless)
        Crawler(self._job(), session=session, selector=selector).run()
        headless.extract.assert_not_called()

    def test_page_delay_between_pages_only(self):
        pattern = "https://site.test/list/{page}"
        session = _session({f"https://site.test/list/{i}": "<p/>" for i in range(1, 4)})
        sleep = MagicMock()
        job = self._job(page_pattern=pattern, end_page=3, page_delay_ms=250)
        Crawler(job, session=session, sleep=sleep).run()
        self.assertEqual(sleep.call_count, 2)
        sleep.assert_called_with(0.25)

    def test_broken_sink_does_not_stop_job(self):
        session = _session({START: '<img src="/a.png">'}, images={"https://site.test/a.png"})
        job = self._job()
        job.on_progress = MagicMock(side_effect=RuntimeError("client went away"))
        result = Crawler(job, session=session).run()
        self.assertEqual(len(result.saved), 1)

    def test_fatal_error_emits_error_event(self):
        session = _session({})
        with patch("image_crawler.core.crawler.ensure_dir", side_effect=PermissionError("read-only")):
            with self.assertRaises(PermissionError):
                Crawler(self._job(), session=session).run()
        self.assertEqual(self.events[-1], {"type": "error", "error": "read-only"})


class TestJobState(_CrawlerTestCase):
    def test_no_backward_transition(self):
        crawler = Crawler(self._job(), session=MagicMock())
        crawler._advance(JobState.DOWNLOADING)
        with self.assertRaises(RuntimeError):
            crawler._advance(JobState.PAGING)
        self.assertEqual(crawler.state, JobState.DOWNLOADING)


class TestCrawlImages(unittest.TestCase):
    def test_rejects_non_http_url(self):
        with self.assertRaises(ConfigError):
            crawl_images("ftp://site.test/pics")

    def test_rejects_empty_url(self):
        with self.assertRaises(ConfigError):
            crawl_images("")


if __name__ == "__main__":
    unittest.main()
