from datetime import timedelta

import pytest

from adlib_scraper.db import CREATIVES, SCRAPING_JOBS, FieldFilter, MemoryDocumentStore
from adlib_scraper.errors import PersistenceError
from adlib_scraper.models import encode_datetime

from fakes import NOW


def _seed(store):
    batch = store.batch()
    for i in range(3):
        batch.set(SCRAPING_JOBS, f"job{i}", {"status": "completed", "startTime": encode_datetime(NOW - timedelta(days=i))})
    batch.set(SCRAPING_JOBS, "job-nostart", {"status": "running"})
    batch.commit()


def test_set_get_and_missing_documents():
    store = MemoryDocumentStore()
    store.batch().set(CREATIVES, "c1", {"hash": "abc", "analysis": None}).commit()
    snap = store.get(CREATIVES, "c1")
    assert snap.exists and snap.data == {"hash": "abc", "analysis": None}
    assert store.get(CREATIVES, "nope").exists is False


def test_query_filters_orders_and_limits():
    store = MemoryDocumentStore()
    _seed(store)
    rows = store.query(SCRAPING_JOBS, order_by="startTime", descending=True, limit=2)
    assert [r.id for r in rows] == ["job0", "job1"]
    older = store.query(SCRAPING_JOBS, where=[FieldFilter("startTime", "<", NOW - timedelta(hours=1))])
    assert sorted(r.id for r in older) == ["job1", "job2"]
    # Ordering excludes documents missing the field.
    assert "job-nostart" not in [r.id for r in store.query(SCRAPING_JOBS, order_by="startTime")]


def test_null_equality_matches_missing_and_null_fields():
    store = MemoryDocumentStore()
    store.batch().set(CREATIVES, "a", {"analysis": None}).set(CREATIVES, "b", {}).set(
        CREATIVES, "c", {"analysis": {"tags": ["x"]}}
    ).commit()
    pending = store.query(CREATIVES, where=[FieldFilter("analysis", "==", None)])
    assert sorted(r.id for r in pending) == ["a", "b"]
    tagged = store.query(CREATIVES, where=[FieldFilter("analysis.tags", "!=", None)])
    assert [r.id for r in tagged] == ["c"]


def test_batch_is_atomic():
    store = MemoryDocumentStore()
    batch = store.batch().set(CREATIVES, "new", {"hash": "n"}).update(CREATIVES, "missing", {"hash": "m"})
    with pytest.raises(PersistenceError):
        batch.commit()
    assert store.count(CREATIVES) == 0
    assert store.commits == 0


def test_update_merges_and_delete_removes():
    store = MemoryDocumentStore()
    store.batch().set(CREATIVES, "c1", {"hash": "abc", "headline": "old"}).commit()
    store.batch().update(CREATIVES, "c1", {"headline": "new"}).commit()
    assert store.get(CREATIVES, "c1").data == {"hash": "abc", "headline": "new"}
    store.batch().delete(CREATIVES, "c1").commit()
    assert store.count(CREATIVES) == 0


def test_empty_batch_does_not_commit():
    store = MemoryDocumentStore()
    store.batch().commit()
    assert store.commits == 0


def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        FieldFilter("hash", "~=", "x")
