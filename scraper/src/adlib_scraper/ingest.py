"""Content-hash dedup and persistence for normalized creatives."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from .db.base import CREATIVES, DocumentStore, FieldFilter
from .enrichment import EnrichmentService
from .errors import PersistenceError
from .logging import jlog
from .models import Creative, SaveResult, encode_datetime, utcnow

# Never rewritten on an update.
_IMMUTABLE_FIELDS = ("id", "createdAt")


class IngestStore:
    """Insert new creatives (enriched) and refresh known ones, one batch per call."""

    def __init__(
        self,
        store: DocumentStore,
        enrichment: EnrichmentService,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.enrichment = enrichment
        self._clock = clock

    async def find_by_hash(self, content_hash: str) -> str | None:
        rows = await asyncio.to_thread(
            self.store.query, CREATIVES, where=[FieldFilter("hash", "==", content_hash)], limit=1
        )
        return rows[0].id if rows else None

    async def save(self, creatives: Sequence[Creative]) -> SaveResult:
        """Persist ``creatives`` atomically and return insert/update counts."""

        if not creatives:
            return SaveResult()

        staged: dict[str, tuple[bool, str, dict[str, Any]]] = {}
        inserted = updated = 0

        for creative in creatives:
            pending = staged.get(creative.hash)
            if pending is not None:
                # Same content twice in one call: fold into the document already staged.
                is_insert, _, data = pending
                fields = _update_fields(creative, self._clock())
                if is_insert:
                    fields.pop("analysis")
                data.update(fields)
                jlog("debug", event="creative_merged_in_batch", creative_hash=creative.hash)
                continue

            existing_id = await self.find_by_hash(creative.hash)
            if existing_id is None:
                now = self._clock()
                doc_id = self.store.new_id()
                creative.id = doc_id
                creative.created_at = creative.created_at or now
                creative.updated_at = now
                creative.analysis = await self.enrichment.classify(creative)
                data = creative.to_document()
                inserted += 1
            else:
                creative.id = existing_id
                data = _update_fields(creative, self._clock())
                updated += 1
            staged[creative.hash] = (existing_id is None, creative.id, data)

        batch = self.store.batch()
        for is_insert, doc_id, data in staged.values():
            if is_insert:
                batch.set(CREATIVES, doc_id, data)
            else:
                batch.update(CREATIVES, doc_id, data)

        try:
            await asyncio.to_thread(batch.commit)
        except PersistenceError:
            raise
        except Exception as exc:
            raise PersistenceError(f"failed to save {len(creatives)} creatives: {exc}") from exc

        result = SaveResult(inserted=inserted, updated=updated)
        jlog("info", event="creatives_saved", inserted=inserted, updated=updated, received=len(creatives))
        return result


def _update_fields(creative: Creative, now: datetime) -> dict[str, Any]:
    data = creative.to_document()
    for key in _IMMUTABLE_FIELDS:
        data.pop(key, None)
    data["updatedAt"] = encode_datetime(now)
    data["analysis"] = None
    return data


__all__ = ["IngestStore"]
