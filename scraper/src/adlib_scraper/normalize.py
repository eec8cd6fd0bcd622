"""Turn raw ad-card snapshots into canonical :class:`Creative` records.

Everything here is pure: the browser driver hands over
:class:`RawAdSnapshot` values and the clock is passed in, so the extraction
rules can be exercised without a live page.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import datetime, timedelta

from dateutil import parser as dateparser

from .hashing import content_hash
from .logging import jlog
from .models import UTC, Creative, CreativeFormat, Platform, RawAdSnapshot, utcnow
from .urls import normalize_destination_url

DAY_SECONDS = 86_400
# Months and years are fixed-length approximations; they drift from the calendar.
UNIT_SECONDS = {
    "day": DAY_SECONDS,
    "week": 7 * DAY_SECONDS,
    "month": 30 * DAY_SECONDS,
    "year": 365 * DAY_SECONDS,
}

RELATIVE_DATE_RE = re.compile(r"(\d+)\s+(day|week|month|year)s?\s+ago", re.IGNORECASE)
_STARTED_PREFIX_RE = re.compile(r"^\s*started\s+running\s+on\s+", re.IGNORECASE)


def parse_start_date(text: str, *, now: datetime | None = None) -> datetime:
    """Parse the ad's start-date label.

    ``"<N> <unit>(s) ago"`` is resolved against ``now``; anything else is
    parsed as a literal date, and unparseable input falls back to ``now``.
    """

    now = now or utcnow()
    if not text:
        return now

    match = RELATIVE_DATE_RE.search(text)
    if match:
        value = int(match.group(1))
        unit = match.group(2).lower()
        return now - timedelta(seconds=value * UNIT_SECONDS[unit])

    literal = _STARTED_PREFIX_RE.sub("", text).strip()
    try:
        parsed = datetime.fromisoformat(literal)
    except ValueError:
        try:
            parsed = dateparser.parse(literal)
        except (ValueError, OverflowError):
            return now
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def classify_format(snapshot: RawAdSnapshot) -> CreativeFormat:
    if snapshot.video_url:
        return CreativeFormat.VIDEO
    if snapshot.has_carousel:
        return CreativeFormat.CAROUSEL
    return CreativeFormat.IMAGE


def passes_gate(snapshot: RawAdSnapshot) -> bool:
    """An ad is only kept when both headline and page name are present."""

    return bool(snapshot.headline.strip() and snapshot.page_name.strip())


def _platform(value: str) -> Platform:
    try:
        return Platform(value.strip().lower())
    except ValueError:
        return Platform.FACEBOOK


def normalize_snapshot(snapshot: RawAdSnapshot, *, now: datetime | None = None) -> Creative | None:
    """Return the canonical creative for ``snapshot`` or ``None`` when gated out."""

    if not passes_gate(snapshot):
        return None
    now = now or utcnow()
    headline = snapshot.headline.strip()
    destination_url = normalize_destination_url(snapshot.destination_url)
    start_date = parse_start_date(snapshot.start_date_text, now=now)
    return Creative(
        id="",
        headline=headline,
        description=snapshot.description.strip(),
        thumbnail_url=snapshot.thumbnail_url or None,
        video_url=snapshot.video_url or None,
        destination_url=destination_url,
        call_to_action=snapshot.call_to_action.strip(),
        start_date=start_date,
        page_name=snapshot.page_name.strip(),
        platform=_platform(snapshot.platform),
        format=classify_format(snapshot),
        hash=content_hash(headline, destination_url, start_date),
        is_active=True,
        created_at=now,
        updated_at=now,
    )


def normalize_records(snapshots: Iterable[RawAdSnapshot], *, now: datetime | None = None) -> list[Creative]:
    """Normalize a page (or crawl) worth of snapshots, dropping gated records."""

    now = now or utcnow()
    creatives: list[Creative] = []
    dropped = 0
    for snapshot in snapshots:
        creative = normalize_snapshot(snapshot, now=now)
        if creative is None:
            dropped += 1
            continue
        creatives.append(creative)
    if dropped:
        jlog("info", event="records_gated", dropped=dropped, kept=len(creatives))
    return creatives


__all__ = [
    "RELATIVE_DATE_RE",
    "UNIT_SECONDS",
    "classify_format",
    "normalize_records",
    "normalize_snapshot",
    "parse_start_date",
    "passes_gate",
]
