"""
Tests for filename derivation, name reservation and atomic writes.
"""

import tempfile
import threading
import unittest
from pathlib import Path

from image_crawler.core.storage import (
    NameRegistry,
    derive_filename,
    ensure_dir,
    ext_from_content_type,
    filename_from_url,
    stream_to_file,
)


class TestFilenames(unittest.TestCase):
    def test_basename(self):
        self.assertEqual(filename_from_url("https://x.test/a/b/photo.jpg?w=300"), "photo.jpg")

    def test_percent_decoded(self):
        self.assertEqual(filename_from_url("https://x.test/my%20cat.png"), "my cat.png")

    def test_unsafe_characters_replaced(self):
        self.assertEqual(filename_from_url("https://x.test/a%3Ab%2A.gif"), "a_b_.gif")

    def test_encoded_slash_cannot_escape(self):
        name = filename_from_url("https://x.test/..%2F..%2Fetc.png")
        self.assertNotIn("/", name)

    def test_placeholder_for_empty_path(self):
        self.assertEqual(filename_from_url("https://x.test/"), "image")
        self.assertEqual(filename_from_url("https://x.test"), "image")

    def test_dots_only_become_placeholder(self):
        self.assertEqual(filename_from_url("https://x.test/.."), "image")

    def test_content_type_map(self):
        self.assertEqual(ext_from_content_type("image/jpeg"), ".jpg")
        self.assertEqual(ext_from_content_type("image/PNG; charset=binary"), ".png")
        self.assertEqual(ext_from_content_type("image/svg+xml"), ".svg")
        self.assertEqual(ext_from_content_type("text/html"), "")
        self.assertEqual(ext_from_content_type(None), "")

    def test_extension_added_only_when_missing(self):
        self.assertEqual(derive_filename("https://x.test/img?id=3", "image/webp"), "img.webp")
        self.assertEqual(derive_filename("https://x.test/pic.gif", "image/png"), "pic.gif")
        self.assertEqual(derive_filename("https://x.test/", "image/png"), "image.png")
        self.assertEqual(derive_filename("https://x.test/raw", "application/octet-stream"), "raw")


class TestNameRegistry(unittest.TestCase):
    def test_suffixes(self):
        registry = NameRegistry()
        self.assertEqual(registry.reserve("photo.jpg"), "photo.jpg")
        self.assertEqual(registry.reserve("photo.jpg"), "photo-1.jpg")
        self.assertEqual(registry.reserve("photo.jpg"), "photo-2.jpg")
        self.assertEqual(len(registry), 3)

    def test_suffix_skips_claimed_name(self):
        registry = NameRegistry()
        registry.reserve("a-1.png")
        registry.reserve("a.png")
        self.assertEqual(registry.reserve("a.png"), "a-2.png")

    def test_no_extension(self):
        registry = NameRegistry()
        registry.reserve("image")
        self.assertEqual(registry.reserve("image"), "image-1")

    def test_case_insensitive(self):
        registry = NameRegistry()
        registry.reserve("Photo.JPG")
        self.assertIn("photo.jpg", registry)
        self.assertEqual(registry.reserve("photo.jpg"), "photo-1.jpg")

    def test_concurrent_reservations_unique(self):
        registry = NameRegistry()
        results: list[str] = []
        lock = threading.Lock()
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            for _ in range(25):
                name = registry.reserve("img.png")
                with lock:
                    results.append(name)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(len(results), 200)
        self.assertEqual(len(set(results)), 200)


class TestStreamToFile(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def test_writes_all_chunks(self):
        target = self.dir / "a.bin"
        size = stream_to_file(target, iter([b"abc", b"", b"def"]))
        self.assertEqual(size, 6)
        self.assertEqual(target.read_bytes(), b"abcdef")
        self.assertEqual([p.name for p in self.dir.iterdir()], ["a.bin"])

    def test_existing_sibling_untouched(self):
        sibling = self.dir / "c.bin.part"
        sibling.write_bytes(b"keep me")
        stream_to_file(self.dir / "c.bin", iter([b"new"]))
        self.assertEqual(sibling.read_bytes(), b"keep me")
        self.assertEqual((self.dir / "c.bin").read_bytes(), b"new")

    def test_dotted_names_never_derived(self):
        for url in ("https://x.test/.hidden.tmp", "https://x.test/...tmp", "https://x.test/%2E.a.tmp"):
            with self.subTest(url=url):
                self.assertFalse(filename_from_url(url).startswith("."))

    def test_failure_leaves_nothing(self):
        def chunks():
            yield b"partial"
            raise IOError("connection reset")

        target = self.dir / "b.bin"
        with self.assertRaises(IOError):
            stream_to_file(target, chunks())
        self.assertEqual(list(self.dir.iterdir()), [])

    def test_ensure_dir_idempotent(self):
        nested = self.dir / "x" / "y"
        ensure_dir(nested)
        ensure_dir(nested)
        self.assertTrue(nested.is_dir())


if __name__ == "__main__":
    unittest.main()
