"""The narrow document-store contract the pipeline relies on."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Protocol, Sequence

from ..models import encode_datetime

USERS = "users"
CREATIVES = "creatives"
ALERTS = "alerts"
ALERT_TRIGGERS = "alert_triggers"
SCRAPING_JOBS = "scraping_jobs"
COLLECTIONS = (USERS, CREATIVES, ALERTS, ALERT_TRIGGERS, SCRAPING_JOBS)

OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


def encode_value(value: Any) -> Any:
    """Render filter operands the same way documents store them."""

    if isinstance(value, datetime):
        return encode_datetime(value)
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in OPERATORS:
            raise ValueError(f"unsupported operator {self.op!r}")


@dataclass(frozen=True)
class DocumentSnapshot:
    id: str
    exists: bool
    data: dict[str, Any] | None = None


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "set" | "update" | "delete"
    collection: str
    doc_id: str
    data: dict[str, Any] | None = None


@dataclass
class WriteBatch:
    """Staged writes applied all-or-nothing by :meth:`commit`."""

    store: "DocumentStore"
    ops: list[WriteOp] = field(default_factory=list)

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp("set", collection, doc_id, dict(data)))
        return self

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> "WriteBatch":
        self.ops.append(WriteOp("update", collection, doc_id, dict(fields)))
        return self

    def delete(self, collection: str, doc_id: str) -> "WriteBatch":
        self.ops.append(WriteOp("delete", collection, doc_id))
        return self

    def __len__(self) -> int:
        return len(self.ops)

    def commit(self) -> None:
        if not self.ops:
            return
        self.store.apply(self.ops)
        self.ops = []


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> DocumentSnapshot: ...

    def query(
        self,
        collection: str,
        *,
        where: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]: ...

    def apply(self, ops: Sequence[WriteOp]) -> None:
        """Apply ``ops`` atomically or raise :class:`PersistenceError`."""
        ...

    def batch(self) -> WriteBatch: ...

    def new_id(self) -> str: ...


def new_document_id() -> str:
    return uuid.uuid4().hex[:20]


__all__ = [
    "ALERTS",
    "ALERT_TRIGGERS",
    "COLLECTIONS",
    "CREATIVES",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "OPERATORS",
    "SCRAPING_JOBS",
    "USERS",
    "WriteBatch",
    "WriteOp",
    "encode_value",
    "new_document_id",
]
