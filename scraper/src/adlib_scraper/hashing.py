"""Content hashing used as the creative dedup key."""

from __future__ import annotations

from datetime import datetime, timezone

UTC = getattr(datetime, "UTC", timezone.utc)

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def rolling_hash(s: str) -> str:
    """Return the 32-bit ``h*31 + c`` hash of ``s`` rendered in base 36.

    Characters are consumed as UTF-16 code units so astral characters hash
    the same way on every runtime that stores strings as UTF-16.
    """

    h = 0
    data = s.encode("utf-16-le")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = _to_int32((h << 5) - h + unit)
    return _base36(abs(h))


def render_start_date(start_date: datetime) -> str:
    """Render ``start_date`` the way it is stored and hashed (UTC, microseconds)."""

    if start_date.tzinfo is None:
        start_date = start_date.replace(tzinfo=UTC)
    return start_date.astimezone(UTC).isoformat(timespec="microseconds")


def content_hash(headline: str, destination_url: str, start_date: datetime) -> str:
    """Fingerprint the identity fields of a creative."""

    return rolling_hash(f"{headline or ''}{destination_url or ''}{render_start_date(start_date)}")


__all__ = ["content_hash", "render_start_date", "rolling_hash"]
