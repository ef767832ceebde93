"""Google Drive crawler exposing the public API for running a crawl."""

from .config import AppConfig, CrawlConfig
from .pipeline import CrawlPipeline, CrawlResult, run_crawl

__all__ = ["AppConfig", "CrawlConfig", "CrawlPipeline", "CrawlResult", "run_crawl"]
