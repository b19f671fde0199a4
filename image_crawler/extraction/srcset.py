"""
Responsive-image candidate selection for ``srcset`` attributes.
"""

import re

from image_crawler.utils.url import to_absolute

_WIDTH_RE = re.compile(r"(\d+)w", re.I)
_DENSITY_RE = re.compile(r"(\d+(?:\.\d+)?)x", re.I)
_WS_RE = re.compile(r"\s+")


def descriptor_score(descriptor: str) -> int:
    """Score the descriptor part of one ``srcset`` candidate.

    Width descriptors score their pixel width; density descriptors score
    ``density * 100``.  Both share one scale, so ``2x`` (200) loses to
    ``400w``.  A missing descriptor scores 0.
    """
    m = _WIDTH_RE.search(descriptor)
    if m:
        return int(m.group(1))
    m = _DENSITY_RE.search(descriptor)
    if m:
        return round(float(m.group(1)) * 100)
    return 0


def pick_from_srcset(srcset: str | None, page_url: str) -> str | None:
    """Return the highest-scoring absolute, non-``data:`` URL in *srcset*.

    Ties go to the candidate that appears last.
    """
    best_url: str | None = None
    best_score = -1
    for part in (srcset or "").split(","):
        part = part.strip()
        if not part:
            continue
        raw, *rest = _WS_RE.split(part, maxsplit=1)
        descriptor = rest[0] if rest else ""
        score = descriptor_score(descriptor)
        absolute = to_absolute(raw, page_url)
        if absolute and score >= best_score:
            best_url, best_score = absolute, score
    return best_url
