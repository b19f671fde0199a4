"""Core crawler logic – pagination, download scheduling and job coordination."""

from image_crawler.core.crawler import Crawler, CrawlResult, JobState, crawl_images
from image_crawler.core.downloader import DownloadResult, DownloadScheduler
from image_crawler.core.pagination import expand_pattern, follow_next_links, resolve_pages
from image_crawler.core.storage import NameRegistry, derive_filename, stream_to_file

__all__ = [
    "Crawler",
    "CrawlResult",
    "JobState",
    "crawl_images",
    "DownloadResult",
    "DownloadScheduler",
    "expand_pattern",
    "follow_next_links",
    "resolve_pages",
    "NameRegistry",
    "derive_filename",
    "stream_to_file",
]
