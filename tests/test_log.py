"""
Tests for logging setup.
"""

import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from image_crawler.utils.log import highlight_tags, log, setup_logging


class TestLogging(unittest.TestCase):
    def tearDown(self):
        for handler in list(log.handlers):
            handler.close()
        log.handlers.clear()

    def test_known_tags_coloured(self):
        text = highlight_tags("[SAVE] a.png")
        self.assertIn("\033[", text)
        self.assertIn("[SAVE]", text)
        self.assertEqual(highlight_tags("[OTHER] x"), "[OTHER] x")

    def test_single_console_handler(self):
        setup_logging()
        setup_logging()
        self.assertEqual(len(log.handlers), 1)
        self.assertEqual(log.level, logging.INFO)

    def test_ci_annotations(self):
        with patch.dict(os.environ, {"GITHUB_ACTIONS": "true"}):
            setup_logging()
        record = logging.LogRecord("image-crawler", logging.WARNING, __file__, 1,
                                   "[ERR] boom", None, None)
        self.assertTrue(log.handlers[0].format(record).startswith("::warning::"))

    def test_file_handler_captures_debug(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "logs" / "crawl.log"
            setup_logging(log_file=str(path))
            log.debug("detail only in the file")
            for handler in log.handlers:
                handler.flush()
            self.assertIn("detail only in the file", path.read_text(encoding="utf-8"))
            for handler in list(log.handlers):
                handler.close()
            log.handlers.clear()


if __name__ == "__main__":
    unittest.main()
