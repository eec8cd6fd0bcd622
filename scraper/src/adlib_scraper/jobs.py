"""Scheduled runs and the job records that track them.

Three run kinds exist:

* ``scrape``   crawl the trending keywords, normalize and save, recording a
  :class:`ScrapingJob` from ``running`` to ``completed``/``failed``;
* ``analysis`` classify creatives that are still missing an analysis;
* ``cleanup``  delete old job records and alert triggers.

Only the scrape run writes a job record, and it finishes that record even
when the run fails. Exceptions escaping the analysis and cleanup runs are
logged by the scheduler.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from .crawler import CrawlerState, PageCrawler
from .db.base import ALERT_TRIGGERS, CREATIVES, SCRAPING_JOBS, DocumentStore, FieldFilter
from .enrichment import EnrichmentService
from .errors import ScrapeError
from .ingest import IngestStore
from .logging import joblog
from .models import Creative, ScrapingConfig, ScrapingJob, encode_datetime, utcnow
from .normalize import normalize_records

KEYWORD_LOOKBACK_DAYS = 7
KEYWORD_SCAN_LIMIT = 100
MAX_KEYWORDS = 10
ANALYSIS_BATCH_SIZE = 20
JOB_RETENTION_DAYS = 30
TRIGGER_RETENTION_DAYS = 90

CrawlerFactory = Callable[[ScrapingConfig], PageCrawler]
Clock = Callable[[], datetime]


class JobTracker:
    """Persists :class:`ScrapingJob` records in the ``scraping_jobs`` collection."""

    def __init__(self, store: DocumentStore, *, clock: Clock = utcnow) -> None:
        self.store = store
        self._clock = clock

    async def _write(self, job: ScrapingJob) -> None:
        batch = self.store.batch().set(SCRAPING_JOBS, job.id, job.to_document())
        await asyncio.to_thread(batch.commit)

    async def create(self, config: ScrapingConfig, job_id: str | None = None) -> ScrapingJob:
        now = self._clock()
        job = ScrapingJob.start(job_id or f"scraping_{int(now.timestamp() * 1000)}", config, now)
        await self._write(job)
        joblog("job_created", job_name="scraping", job_id=job.id, status=job.status)
        return job

    async def complete(self, job: ScrapingJob, *, found: int, processed: int, errors: Sequence[str]) -> ScrapingJob:
        """Record ``job`` as completed; ``job`` itself stays running if the write fails."""

        job = replace(job)
        job.mark_completed(found=found, processed=processed, errors=list(errors), now=self._clock())
        await self._write(job)
        joblog(
            "job_completed",
            job_name="scraping",
            job_id=job.id,
            creatives_found=found,
            creatives_processed=processed,
            errors=len(job.errors),
        )
        return job

    async def fail(
        self,
        job: ScrapingJob,
        message: str,
        *,
        found: int = 0,
        processed: int = 0,
        errors: Sequence[str] = (),
    ) -> ScrapingJob:
        job = replace(job)
        job.mark_failed(message, found=found, processed=processed, errors=list(errors), now=self._clock())
        await self._write(job)
        joblog("job_failed", job_name="scraping", job_id=job.id, level="error", error=message)
        return job

    async def get(self, job_id: str) -> ScrapingJob | None:
        snap = await asyncio.to_thread(self.store.get, SCRAPING_JOBS, job_id)
        if not snap.exists or snap.data is None:
            return None
        return ScrapingJob.from_document(snap.id, snap.data)

    async def recent(self, limit: int = 10) -> list[ScrapingJob]:
        rows = await asyncio.to_thread(
            self.store.query, SCRAPING_JOBS, order_by="startTime", descending=True, limit=limit
        )
        return [ScrapingJob.from_document(r.id, r.data or {}) for r in rows]


async def trending_keywords(
    store: DocumentStore,
    *,
    fallback: Sequence[str],
    now: datetime | None = None,
    lookback_days: int = KEYWORD_LOOKBACK_DAYS,
    limit: int = MAX_KEYWORDS,
) -> list[str]:
    """Tags of recently created creatives, newest first; ``fallback`` when there are none."""

    since = (now or utcnow()) - timedelta(days=lookback_days)
    try:
        rows = await asyncio.to_thread(
            store.query,
            CREATIVES,
            where=[FieldFilter("createdAt", ">", since)],
            order_by="createdAt",
            descending=True,
            limit=KEYWORD_SCAN_LIMIT,
        )
    except Exception as exc:
        joblog("keyword_lookup_failed", job_name="scraping", level="error", error=str(exc))
        return list(fallback)

    keywords: list[str] = []
    for row in rows:
        analysis = (row.data or {}).get("analysis") or {}
        for tag in analysis.get("tags") or []:
            if tag and tag not in keywords:
                keywords.append(tag)
    if not keywords:
        return list(fallback)
    return keywords[:limit]


@dataclass
class ScrapeRun:
    """One scheduled scrape: crawl each keyword, save, and finalize the job record."""

    store: DocumentStore
    tracker: JobTracker
    ingest: IngestStore
    crawler_factory: CrawlerFactory
    config: ScrapingConfig
    fallback_keywords: Sequence[str]
    keyword_pages: int = 5
    clock: Clock = utcnow

    async def run(self, keywords: Sequence[str] | None = None) -> ScrapingJob:
        # The recorded config carries the per-keyword page cap actually crawled.
        config = replace(self.config, max_pages=min(self.keyword_pages, self.config.max_pages))
        job = await self.tracker.create(config)
        crawler = self.crawler_factory(config)
        found = processed = 0
        errors: list[str] = []
        try:
            await crawler.initialize()
            if keywords is None:
                keywords = await trending_keywords(self.store, fallback=self.fallback_keywords, now=self.clock())
            joblog("scrape_keywords", job_name="scraping", job_id=job.id, keywords=list(keywords))

            for keyword in keywords:
                try:
                    if crawler.state is CrawlerState.CLOSED:
                        await crawler.initialize()
                    snapshots = await crawler.crawl(keyword, max_pages=config.max_pages)
                    creatives = normalize_records(snapshots, now=self.clock())
                    if creatives:
                        result = await self.ingest.save(creatives)
                        found += len(creatives)
                        processed += result.total
                except Exception as exc:
                    err = ScrapeError(keyword, exc)
                    errors.append(str(err))
                    joblog("keyword_failed", job_name="scraping", job_id=job.id, level="error", error=str(err))

            return await self.tracker.complete(job, found=found, processed=processed, errors=errors)
        except asyncio.CancelledError:
            joblog("scrape_run_cancelled", job_name="scraping", job_id=job.id, level="warning")
            await self.tracker.fail(job, "scrape run cancelled", found=found, processed=processed, errors=errors)
            raise
        except Exception as exc:
            joblog("scrape_run_error", job_name="scraping", job_id=job.id, level="error", error=str(exc))
            return await self.tracker.fail(job, str(exc), found=found, processed=processed, errors=errors)
        finally:
            await crawler.close()


async def run_analysis(
    store: DocumentStore,
    enrichment: EnrichmentService,
    *,
    limit: int = ANALYSIS_BATCH_SIZE,
    clock: Clock = utcnow,
) -> int:
    """Classify up to ``limit`` unanalyzed creatives; returns how many were updated."""

    rows = await asyncio.to_thread(store.query, CREATIVES, where=[FieldFilter("analysis", "==", None)], limit=limit)
    if not rows:
        joblog("analysis_nothing_to_do", job_name="analysis")
        return 0

    creatives = [Creative.from_document(r.id, r.data or {}) for r in rows]
    joblog("analysis_start", job_name="analysis", creatives=len(creatives))
    analyses = await enrichment.classify_batch(creatives)

    batch = store.batch()
    for creative, analysis in zip(creatives, analyses):
        batch.update(
            CREATIVES,
            creative.id,
            {"analysis": analysis.to_document(), "updatedAt": encode_datetime(clock())},
        )
    await asyncio.to_thread(batch.commit)
    joblog("analysis_done", job_name="analysis", analyzed=len(creatives))
    return len(creatives)


async def _delete_older_than(store: DocumentStore, collection: str, field_name: str, cutoff: datetime) -> int:
    rows = await asyncio.to_thread(store.query, collection, where=[FieldFilter(field_name, "<", cutoff)])
    if not rows:
        return 0
    batch = store.batch()
    for row in rows:
        batch.delete(collection, row.id)
    await asyncio.to_thread(batch.commit)
    return len(rows)


async def run_cleanup(
    store: DocumentStore,
    *,
    job_retention_days: int = JOB_RETENTION_DAYS,
    trigger_retention_days: int = TRIGGER_RETENTION_DAYS,
    clock: Clock = utcnow,
) -> dict[str, int]:
    """Delete stale job records and alert triggers, one batch per collection."""

    now = clock()
    jobs_deleted = await _delete_older_than(
        store, SCRAPING_JOBS, "startTime", now - timedelta(days=job_retention_days)
    )
    triggers_deleted = await _delete_older_than(
        store, ALERT_TRIGGERS, "triggeredAt", now - timedelta(days=trigger_retention_days)
    )
    joblog("cleanup_done", job_name="cleanup", jobs_deleted=jobs_deleted, triggers_deleted=triggers_deleted)
    return {SCRAPING_JOBS: jobs_deleted, ALERT_TRIGGERS: triggers_deleted}


__all__ = [
    "JobTracker",
    "ScrapeRun",
    "run_analysis",
    "run_cleanup",
    "trending_keywords",
]
