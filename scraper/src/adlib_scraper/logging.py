"""Structured logging helpers shared by the runs and the scheduler."""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator

UTC = getattr(datetime, "UTC", timezone.utc)
_LOGGER_NAME = "scraper"
_configured = False
_base_context: dict[str, Any] = {}
# Scheduled runs interleave on one event loop, so scoped fields live per task.
_scoped_context: ContextVar[dict[str, Any]] = ContextVar("scraper_log_context", default={})


def configure_logging(level: int = logging.INFO) -> None:
    """Configure the global logging formatter once."""

    global _configured
    if _configured:
        return
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")
    # APScheduler reports every execution at INFO; our own events cover that.
    logging.getLogger("apscheduler").setLevel(max(level, logging.WARNING))
    _configured = True


def set_global_context(**fields: Any) -> None:
    """Add persistent context fields that appear on every structured log."""

    _base_context.update({k: v for k, v in fields.items() if v is not None})


@contextmanager
def logging_context(**fields: Any) -> Iterator[None]:
    """Add scoped fields for the duration of the ``with`` block (task-local)."""

    merged = {**_scoped_context.get(), **{k: v for k, v in fields.items() if v is not None}}
    token = _scoped_context.set(merged)
    try:
        yield
    finally:
        _scoped_context.reset(token)


def _utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


def _default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    enum_value = getattr(value, "value", None)
    if enum_value is not None:
        return enum_value
    return str(value)


def jlog(level: str, /, **fields: Any) -> None:
    """Emit a structured JSON log payload under the ``scraper`` logger."""

    log = logging.getLogger(_LOGGER_NAME)
    record = {"ts": _utcnow_iso(), **_base_context, **_scoped_context.get(), **fields}
    getattr(log, level.lower())(json.dumps(record, ensure_ascii=False, sort_keys=True, default=_default))


def joblog(event: str, *, job_name: str, job_id: str | None = None, level: str = "info", **kw: Any) -> None:
    """Shortcut for job-scoped JSON logging records."""

    jlog(level, event=event, job_name=job_name, job_id=job_id, **kw)


__all__ = ["configure_logging", "jlog", "joblog", "logging_context", "set_global_context"]
