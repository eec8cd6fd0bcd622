"""Process-local document store used for dry runs and tests."""

from __future__ import annotations

import copy
import operator
import threading
from typing import Any, Callable, Sequence

from ..errors import PersistenceError
from ..logging import jlog
from .base import DocumentSnapshot, FieldFilter, WriteBatch, WriteOp, encode_value, new_document_id

_MISSING = object()

_COMPARE: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _lookup(data: dict[str, Any], path: str) -> Any:
    node: Any = data
    for part in path.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _matches(data: dict[str, Any], flt: FieldFilter) -> bool:
    actual = _lookup(data, flt.field)
    expected = encode_value(flt.value)
    if expected is None and flt.op in ("==", "!="):
        is_null = actual is _MISSING or actual is None
        return is_null if flt.op == "==" else not is_null
    if actual is _MISSING or actual is None:
        return False
    try:
        return _COMPARE[flt.op](actual, expected)
    except TypeError:
        return False


class MemoryDocumentStore:
    """Dict-backed store honouring the batch atomicity of the real backend."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.Lock()
        self.commits = 0

    def new_id(self) -> str:
        return new_document_id()

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    def get(self, collection: str, doc_id: str) -> DocumentSnapshot:
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return DocumentSnapshot(id=doc_id, exists=False)
            return DocumentSnapshot(id=doc_id, exists=True, data=copy.deepcopy(data))

    def query(
        self,
        collection: str,
        *,
        where: Sequence[FieldFilter] = (),
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[DocumentSnapshot]:
        with self._lock:
            rows = [
                (doc_id, data)
                for doc_id, data in self._collections.get(collection, {}).items()
                if all(_matches(data, flt) for flt in where)
            ]
            if order_by:
                present = [r for r in rows if _lookup(r[1], order_by) not in (_MISSING, None)]
                present.sort(key=lambda r: _lookup(r[1], order_by), reverse=descending)
                rows = present
            if limit is not None:
                rows = rows[:limit]
            return [DocumentSnapshot(id=doc_id, exists=True, data=copy.deepcopy(data)) for doc_id, data in rows]

    def apply(self, ops: Sequence[WriteOp]) -> None:
        with self._lock:
            staged = copy.deepcopy(self._collections)
            for op in ops:
                docs = staged.setdefault(op.collection, {})
                if op.kind == "set":
                    docs[op.doc_id] = copy.deepcopy(op.data or {})
                elif op.kind == "update":
                    if op.doc_id not in docs:
                        raise PersistenceError(f"cannot update missing document {op.collection}/{op.doc_id}")
                    docs[op.doc_id].update(copy.deepcopy(op.data or {}))
                elif op.kind == "delete":
                    docs.pop(op.doc_id, None)
                else:
                    raise PersistenceError(f"unknown write kind {op.kind!r}")
            self._collections = staged
            self.commits += 1
        jlog("debug", event="batch_committed", backend="memory", ops=len(ops))

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))


__all__ = ["MemoryDocumentStore"]
