import asyncio
from dataclasses import replace

import pytest

from adlib_scraper.config import Settings
from adlib_scraper.db import SCRAPING_JOBS, MemoryDocumentStore
from adlib_scraper.errors import JobError
from adlib_scraper.runner import apply_args, build_registry, build_services, parse_args, run_job

from fakes import FakeClassifier, FakeCrawler


def test_parse_args_for_a_job():
    args = parse_args(["job", "scraping", "--keyword", "beleza", "--keyword", "dieta", "--keyword-pages", "2", "--dry-run"])
    assert args.command == "job"
    assert args.job == "scraping"
    assert args.keywords == ["beleza", "dieta"]
    assert args.keyword_pages == 2
    assert args.dry_run is True


def test_parse_args_for_the_scheduler():
    args = parse_args(["scheduler", "--timezone", "UTC", "--headful"])
    assert args.command == "scheduler"
    assert args.job is None
    assert args.keywords is None
    settings = apply_args(Settings(), args)
    assert settings.timezone == "UTC"
    assert settings.headless is False


def test_parse_args_rejects_bad_page_counts():
    with pytest.raises(ValueError):
        parse_args(["job", "scraping", "--max-pages", "0"])


def test_registry_has_the_three_jobs():
    services = build_services(Settings(), store=MemoryDocumentStore(), classifier=FakeClassifier())
    assert build_registry(services).names() == ["scraping", "analysis", "cleanup"]


def test_run_job_cleanup_on_memory_store():
    store = MemoryDocumentStore()
    store.batch().set(SCRAPING_JOBS, "ancient", {"startTime": "2000-01-01T00:00:00.000000+00:00"}).commit()
    services = build_services(Settings(), store=store, classifier=FakeClassifier())
    result = asyncio.run(run_job("cleanup", services))
    assert result[SCRAPING_JOBS] == 1
    with pytest.raises(JobError):
        asyncio.run(run_job("reindex", services))


def test_max_pages_flag_caps_each_keyword_crawl():
    args = parse_args(["job", "scraping", "--max-pages", "2", "--dry-run"])
    services = build_services(apply_args(Settings(), args), store=MemoryDocumentStore(), classifier=FakeClassifier())
    crawler = FakeCrawler({})
    scrape = replace(services.scrape_run(), crawler_factory=lambda config: crawler)

    job = asyncio.run(scrape.run(["beleza"]))
    assert crawler.crawled == [("beleza", 2)]
    assert job.config.max_pages == 2
    assert services.store.get(SCRAPING_JOBS, job.id).data["config"]["maxPages"] == 2
