"""Process wiring and command line for the scheduler and ad-hoc runs.

``scripts/run_scheduler.py`` serves the cron triggers until SIGINT/SIGTERM;
``scripts/run_job.py`` executes a single ``scraping``/``analysis``/``cleanup``
run and exits. Both build their collaborators through :func:`build_services`.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from .config import Settings
from .crawler import PageCrawler
from .db.base import DocumentStore
from .db.memory import MemoryDocumentStore
from .db.postgres import PostgresDocumentStore
from .enrichment import ClassifierClient, EnrichmentService, OpenAIClassifier
from .errors import JobError
from .ingest import IngestStore
from .jobs import JobTracker, ScrapeRun, run_analysis, run_cleanup
from .logging import jlog
from .models import ScrapingConfig
from .scheduler import ANALYSIS, CLEANUP, DEFAULT_SCHEDULES, SCRAPING, JobRegistry, JobScheduler

JOB_NAMES = (SCRAPING, ANALYSIS, CLEANUP)


@dataclass(frozen=True)
class CliArgs:
    command: str
    job: str | None
    keywords: list[str] | None
    max_pages: int | None
    keyword_pages: int | None
    country: str | None
    timezone: str | None
    headful: bool
    debug_html: bool
    dry_run: bool
    db_host: str | None
    db_port: int | None


def validate_args(args: argparse.Namespace) -> None:
    """Reject impossible values and warn about expensive runs."""
    if args.max_pages is not None and args.max_pages < 1:
        raise ValueError(f"--max-pages must be >= 1 (got {args.max_pages})")
    if args.keyword_pages is not None and args.keyword_pages < 1:
        raise ValueError(f"--keyword-pages must be >= 1 (got {args.keyword_pages})")
    if args.command == "job" and args.job is None:
        raise ValueError("the job command needs a job name")
    if args.keywords and args.job not in (None, SCRAPING):
        jlog("warning", event="keywords_ignored", job=args.job, message="--keyword only applies to scraping runs")

    pages = args.keyword_pages or args.max_pages
    if pages and pages > 20:
        jlog(
            "warning",
            event="large_crawl",
            message="More than 20 result pages per keyword; expect long runs and rate limiting.",
            pages=pages,
        )
    if args.dry_run:
        jlog(
            "warning",
            event="dry_run",
            message="Using the in-memory document store; nothing is persisted.",
        )


def parse_args(argv: Sequence[str] | None = None) -> CliArgs:
    p = argparse.ArgumentParser(description="Meta Ads Library crawl-and-ingest runner")
    sub = p.add_subparsers(dest="command", required=True)

    def _common(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("--max-pages", type=int, help="Page cap for a crawl (default ADLIB_MAX_PAGES)")
        sp.add_argument("--keyword-pages", type=int, help="Pages crawled per keyword (default ADLIB_KEYWORD_PAGES)")
        sp.add_argument("--country", help="Ads Library country filter (default ADLIB_COUNTRY)")
        sp.add_argument("--timezone", help="Cron timezone (default SCHEDULER_TIMEZONE)")
        sp.add_argument("--db-host")
        sp.add_argument("--db-port", type=int)
        sp.add_argument("--headful", action="store_true", help="Show the browser window.")
        sp.add_argument(
            "--debug-html",
            action="store_true",
            help="Dump result page HTML to media/debug/ when the result list fails to load.",
        )
        sp.add_argument(
            "--dry-run",
            action="store_true",
            help="Use an in-memory document store instead of Postgres.",
        )

    _common(sub.add_parser("scheduler", help="Serve the cron triggers until interrupted"))
    job_p = sub.add_parser("job", help="Run one job immediately and exit")
    job_p.add_argument("job", choices=JOB_NAMES)
    job_p.add_argument(
        "--keyword",
        dest="keywords",
        action="append",
        help="Crawl this keyword instead of the trending list (repeatable)",
    )
    _common(job_p)

    ns = p.parse_args(argv)
    if not hasattr(ns, "job"):
        ns.job = None
    if not hasattr(ns, "keywords"):
        ns.keywords = None
    validate_args(ns)

    return CliArgs(
        command=ns.command,
        job=ns.job,
        keywords=ns.keywords,
        max_pages=ns.max_pages,
        keyword_pages=ns.keyword_pages,
        country=ns.country,
        timezone=ns.timezone,
        headful=ns.headful,
        debug_html=ns.debug_html,
        dry_run=ns.dry_run,
        db_host=ns.db_host,
        db_port=ns.db_port,
    )


def apply_args(settings: Settings, args: CliArgs) -> Settings:
    """Overlay command-line flags on environment settings."""

    overrides: dict[str, Any] = {}
    if args.max_pages is not None:
        overrides["max_pages"] = args.max_pages
    if args.keyword_pages is not None:
        overrides["keyword_pages"] = args.keyword_pages
    if args.country:
        overrides["country"] = args.country
    if args.timezone:
        overrides["timezone"] = args.timezone
    if args.db_host:
        overrides["db_host"] = args.db_host
    if args.db_port:
        overrides["db_port"] = args.db_port
    if args.headful:
        overrides["headless"] = False
    if args.debug_html:
        overrides["debug_html"] = True
    return replace(settings, **overrides) if overrides else settings


@dataclass
class Services:
    settings: Settings
    store: DocumentStore
    enrichment: EnrichmentService
    ingest: IngestStore
    tracker: JobTracker

    def crawler_for(self, config: ScrapingConfig) -> PageCrawler:
        s = self.settings
        return PageCrawler(
            config,
            country=s.country,
            result_timeout_ms=s.result_timeout_ms,
            navigation_timeout_ms=s.navigation_timeout_ms,
            headless=s.headless,
            proxy_server=s.proxy_server,
            debug_html=s.debug_html,
        )

    def scrape_run(self) -> ScrapeRun:
        return ScrapeRun(
            store=self.store,
            tracker=self.tracker,
            ingest=self.ingest,
            crawler_factory=self.crawler_for,
            config=self.settings.scraping_config(),
            fallback_keywords=self.settings.fallback_keywords,
            keyword_pages=self.settings.keyword_pages,
        )

    def close(self) -> None:
        close = getattr(self.store, "close", None)
        if close is not None:
            close()


def build_services(
    settings: Settings,
    *,
    dry_run: bool = False,
    store: DocumentStore | None = None,
    classifier: ClassifierClient | None = None,
) -> Services:
    if store is None:
        if dry_run:
            store = MemoryDocumentStore()
        else:
            store = PostgresDocumentStore.connect(settings)
    if classifier is None:
        classifier = OpenAIClassifier(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout_s=settings.openai_timeout_s,
        )
        if not settings.openai_api_key:
            jlog("warning", event="classifier_unconfigured", message="OPENAI_API_KEY unset; analyses fall back to defaults")
    enrichment = EnrichmentService(
        classifier,
        model=settings.openai_model,
        max_tokens=settings.openai_max_tokens,
        temperature=settings.openai_temperature,
        delay_ms=settings.enrichment_delay_ms,
    )
    return Services(
        settings=settings,
        store=store,
        enrichment=enrichment,
        ingest=IngestStore(store, enrichment),
        tracker=JobTracker(store),
    )


def build_registry(services: Services, *, keywords: Sequence[str] | None = None) -> JobRegistry:
    registry = JobRegistry()

    async def _scrape() -> Any:
        return await services.scrape_run().run(keywords)

    async def _analysis() -> Any:
        return await run_analysis(services.store, services.enrichment)

    async def _cleanup() -> Any:
        return await run_cleanup(services.store)

    registry.register(SCRAPING, DEFAULT_SCHEDULES[SCRAPING], _scrape)
    registry.register(ANALYSIS, DEFAULT_SCHEDULES[ANALYSIS], _analysis)
    registry.register(CLEANUP, DEFAULT_SCHEDULES[CLEANUP], _cleanup)
    return registry


async def run_job(name: str, services: Services, *, keywords: Sequence[str] | None = None) -> Any:
    """Execute one run directly; exceptions propagate to the caller."""

    registry = build_registry(services, keywords=keywords)
    if name not in registry:
        raise JobError(f"unknown job {name!r}")
    return await registry.get(name).func()


async def run_scheduler(services: Services, *, stop: asyncio.Event | None = None) -> None:
    """Serve every cron trigger until ``stop`` is set or a signal arrives."""

    stop = stop or asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            jlog("debug", event="signal_handler_unavailable", signal=sig.name)

    scheduler = JobScheduler(build_registry(services), timezone=services.settings.timezone)
    scheduler.start_all()
    for name in scheduler.registry.names():
        jlog("info", event="next_fire_time", job_name=name, at=scheduler.next_fire_time(name))
    try:
        await stop.wait()
    finally:
        scheduler.stop_all()


async def run(args: CliArgs, *, settings: Settings | None = None) -> Any:
    settings = apply_args(settings or Settings.from_env(), args)
    services = build_services(settings, dry_run=args.dry_run)
    try:
        if args.command == "scheduler":
            await run_scheduler(services)
            return None
        assert args.job is not None
        result = await run_job(args.job, services, keywords=args.keywords)
        jlog("info", event="job_result", job_name=args.job, result=_describe(result))
        return result
    finally:
        services.close()


def _describe(result: Any) -> Any:
    to_document = getattr(result, "to_document", None)
    return to_document() if to_document else result


__all__ = [
    "CliArgs",
    "JOB_NAMES",
    "Services",
    "apply_args",
    "build_registry",
    "build_services",
    "parse_args",
    "run",
    "run_job",
    "run_scheduler",
    "validate_args",
]
