"""Utility helpers for URL handling and logging."""

from image_crawler.utils.url import origin, origin_url, same_origin, to_absolute
from image_crawler.utils.log import setup_logging, log

__all__ = [
    "origin",
    "origin_url",
    "same_origin",
    "to_absolute",
    "setup_logging",
    "log",
]
