"""Document-store contract and backends used by the ingest pipeline."""

from .base import (
    ALERT_TRIGGERS,
    ALERTS,
    COLLECTIONS,
    CREATIVES,
    SCRAPING_JOBS,
    USERS,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    WriteBatch,
)
from .memory import MemoryDocumentStore

__all__ = [
    "ALERTS",
    "ALERT_TRIGGERS",
    "COLLECTIONS",
    "CREATIVES",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "MemoryDocumentStore",
    "SCRAPING_JOBS",
    "USERS",
    "WriteBatch",
]
