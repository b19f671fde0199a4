"""Image URL extraction: static parsing, pagination links, headless rendering."""

from image_crawler.extraction.images import DiscoveredUrls, extract_images
from image_crawler.extraction.links import find_next_url
from image_crawler.extraction.srcset import pick_from_srcset
from image_crawler.extraction.headless import HeadlessExtractor
from image_crawler.extraction.strategy import (
    Extractor,
    ExtractorSelector,
    StaticExtractor,
    build_selector,
)

__all__ = [
    "DiscoveredUrls",
    "extract_images",
    "find_next_url",
    "pick_from_srcset",
    "HeadlessExtractor",
    "Extractor",
    "ExtractorSelector",
    "StaticExtractor",
    "build_selector",
]
