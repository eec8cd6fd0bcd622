"""Error kinds raised across the crawl-and-ingest pipeline."""

from __future__ import annotations


class ScraperError(Exception):
    """Base class for every error raised by :mod:`adlib_scraper`."""


class ConfigError(ScraperError):
    """Required configuration is missing or invalid."""


class InitializationError(ScraperError):
    """The browser automation session could not be created."""


class NavigationError(ScraperError):
    """The result list never appeared or the pagination control failed."""


class ExtractionError(ScraperError):
    """A single ad's markup could not be read; the ad is skipped."""


class CrawlerStateError(ScraperError):
    """A crawler method was called in a state that does not allow it."""


class AnalysisError(ScraperError):
    """The classification provider failed or returned an unusable payload."""


class PersistenceError(ScraperError):
    """A batched write to the document store failed to commit."""


class ScrapeError(ScraperError):
    """Crawling one keyword failed; recorded on the job and skipped."""

    def __init__(self, keyword: str, cause: BaseException):
        self.keyword = keyword
        self.cause = cause
        super().__init__(f"Error scraping keyword '{keyword}': {cause}")


class JobError(ScraperError):
    """An uncaught exception escaped a scheduled run."""


class JobStateError(ScraperError):
    """A job record was asked to make an illegal status transition."""


__all__ = [
    "AnalysisError",
    "ConfigError",
    "CrawlerStateError",
    "ExtractionError",
    "InitializationError",
    "JobError",
    "JobStateError",
    "NavigationError",
    "PersistenceError",
    "ScrapeError",
    "ScraperError",
]
