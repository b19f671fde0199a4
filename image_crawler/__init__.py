"""
Image crawler: discovers images on paginated pages and downloads them.
"""

from image_crawler.config import CrawlJob
from image_crawler.core.crawler import Crawler, CrawlResult, crawl_images
from image_crawler.errors import ConfigError, CrawlerError

__version__ = "1.0.0"

__all__ = [
    "CrawlJob",
    "Crawler",
    "CrawlResult",
    "crawl_images",
    "ConfigError",
    "CrawlerError",
]
