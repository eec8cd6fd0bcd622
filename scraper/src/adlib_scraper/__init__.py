"""High-level utilities shared across the Ads Library crawl-and-ingest runs."""

from .config import Settings, get_scraper_version
from .crawler import CrawlerState, PageCrawler
from .enrichment import EnrichmentService, OpenAIClassifier
from .errors import ScraperError
from .hashing import content_hash, rolling_hash
from .ingest import IngestStore
from .jobs import JobTracker, ScrapeRun, run_analysis, run_cleanup
from .logging import jlog, joblog
from .models import Creative, CreativeAnalysis, RawAdSnapshot, SaveResult, ScrapingConfig, ScrapingJob
from .normalize import normalize_records, normalize_snapshot, parse_start_date
from .scheduler import JobRegistry, JobScheduler
from .urls import build_search_url, normalize_destination_url

__all__ = [
    "content_hash",
    "Creative",
    "CreativeAnalysis",
    "CrawlerState",
    "EnrichmentService",
    "get_scraper_version",
    "IngestStore",
    "jlog",
    "joblog",
    "JobRegistry",
    "JobScheduler",
    "JobTracker",
    "normalize_destination_url",
    "normalize_records",
    "normalize_snapshot",
    "OpenAIClassifier",
    "PageCrawler",
    "parse_start_date",
    "RawAdSnapshot",
    "rolling_hash",
    "run_analysis",
    "run_cleanup",
    "SaveResult",
    "ScrapeRun",
    "ScraperError",
    "ScrapingConfig",
    "ScrapingJob",
    "Settings",
    "build_search_url",
]
