"""
File storage helpers: filename derivation, collision-free name
reservation and atomic streamed writes.
"""

import logging
import os
import re
import tempfile
import threading
import urllib.parse
from pathlib import Path
from typing import Iterator

from image_crawler.config import IMAGE_EXTENSIONS, PLACEHOLDER_FILENAME, TEMP_PREFIX, TEMP_SUFFIX

log = logging.getLogger("image-crawler")

# Characters that are invalid in file names on at least one common platform
_UNSAFE_CHARS_RE = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def filename_from_url(url: str) -> str:
    """Basename of the URL path, or :data:`PLACEHOLDER_FILENAME`."""
    try:
        path = urllib.parse.urlparse(url).path
    except ValueError:
        return PLACEHOLDER_FILENAME
    name = urllib.parse.unquote(path.rsplit("/", 1)[-1])
    name = _UNSAFE_CHARS_RE.sub("_", name).strip().strip(".")
    return name or PLACEHOLDER_FILENAME


def ext_from_content_type(content_type: str | None) -> str:
    """Map an image Content-Type to an extension (with dot), or ``""``."""
    if not content_type:
        return ""
    ct = content_type.split(";")[0].strip().lower()
    return IMAGE_EXTENSIONS.get(ct, "")


def derive_filename(url: str, content_type: str | None = None) -> str:
    """Filename for *url*, appending an extension from *content_type*
    when the URL-derived name has none."""
    name = filename_from_url(url)
    if not os.path.splitext(name)[1]:
        name += ext_from_content_type(content_type)
    return name


def _with_suffix(name: str, n: int) -> str:
    stem, ext = os.path.splitext(name)
    return f"{stem}-{n}{ext}"


class NameRegistry:
    """Filenames claimed in one output directory during one job.

    :meth:`reserve` is a single locked check-and-insert, so two workers
    can never be handed the same name.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._used: set[str] = set()

    def reserve(self, name: str) -> str:
        """Claim *name*, or ``name-1.ext``, ``name-2.ext`` … if taken."""
        with self._lock:
            final = name
            n = 1
            while self._key(final) in self._used:
                final = _with_suffix(name, n)
                n += 1
            self._used.add(self._key(final))
            return final

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return self._key(name) in self._used

    def __len__(self) -> int:
        with self._lock:
            return len(self._used)

    @staticmethod
    def _key(name: str) -> str:
        # Case-folded so case-insensitive filesystems cannot alias two names
        return name.casefold()


def ensure_dir(path: Path) -> Path:
    """Create *path* (and parents) if missing; idempotent."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def stream_to_file(local_path: Path, chunks: Iterator[bytes]) -> int:
    """Write streaming *chunks* to *local_path* atomically.

    Data goes to a uniquely named ``.<random>.tmp`` file beside the target
    and is moved into place only after the last chunk; on any error the
    partial file is removed and the exception propagates.  The dot prefix
    keeps the temporary name outside the names :func:`filename_from_url`
    produces.  Returns the number of bytes written.
    """
    fh = tempfile.NamedTemporaryFile(
        dir=local_path.parent, prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, delete=False,
    )
    tmp_path = Path(fh.name)
    total = 0
    try:
        with fh:
            for chunk in chunks:
                if chunk:
                    fh.write(chunk)
                    total += len(chunk)
        os.replace(tmp_path, local_path)
    except BaseException:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        raise
    log.debug("Streamed → %s (%d bytes)", local_path, total)
    return total
