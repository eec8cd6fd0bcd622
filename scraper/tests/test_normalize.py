from datetime import datetime, timedelta

from adlib_scraper.models import UTC, CreativeFormat, RawAdSnapshot
from adlib_scraper.normalize import normalize_records, normalize_snapshot, parse_start_date

from fakes import NOW, ad_payload


def _snapshot(**overrides) -> RawAdSnapshot:
    return RawAdSnapshot.from_page_payload(ad_payload(1, **overrides))


def test_parse_start_date_relative_units():
    assert parse_start_date("3 days ago", now=NOW) == NOW - timedelta(days=3)
    assert parse_start_date("Started 2 weeks ago", now=NOW) == NOW - timedelta(days=14)
    assert parse_start_date("1 month ago", now=NOW) == NOW - timedelta(days=30)
    assert parse_start_date("2 years ago", now=NOW) == NOW - timedelta(days=730)


def test_parse_start_date_literal_dates():
    assert parse_start_date("Started running on Jan 5, 2025", now=NOW) == datetime(2025, 1, 5, tzinfo=UTC)
    assert parse_start_date("2024-12-31", now=NOW) == datetime(2024, 12, 31, tzinfo=UTC)


def test_parse_start_date_falls_back_to_now():
    assert parse_start_date("", now=NOW) == NOW
    assert parse_start_date("not a date at all", now=NOW) == NOW


def test_normalize_snapshot_gates_on_headline_and_page_name():
    assert normalize_snapshot(_snapshot(headline="  "), now=NOW) is None
    assert normalize_snapshot(_snapshot(pageName=""), now=NOW) is None
    assert normalize_snapshot(_snapshot(), now=NOW) is not None


def test_normalize_snapshot_builds_canonical_creative():
    creative = normalize_snapshot(_snapshot(thumbnailUrl="", destinationUrl="https://shop.example.com/p?utm_source=fb"), now=NOW)
    assert creative.headline == "Headline 1"
    assert creative.destination_url == "https://shop.example.com/p"
    assert creative.thumbnail_url is None
    assert creative.start_date == datetime(2025, 1, 5, tzinfo=UTC)
    assert creative.created_at == creative.updated_at == NOW
    assert creative.is_active is True
    assert creative.analysis is None
    assert creative.id == ""


def test_format_classification():
    assert normalize_snapshot(_snapshot(videoUrl="https://v.example.com/1.mp4"), now=NOW).format is CreativeFormat.VIDEO
    assert normalize_snapshot(_snapshot(hasCarousel=True), now=NOW).format is CreativeFormat.CAROUSEL
    assert normalize_snapshot(_snapshot(), now=NOW).format is CreativeFormat.IMAGE


def test_tracking_parameters_do_not_change_the_hash():
    plain = normalize_snapshot(_snapshot(destinationUrl="https://shop.example.com/p"), now=NOW)
    tracked = normalize_snapshot(_snapshot(destinationUrl="https://shop.example.com/p?fbclid=abc"), now=NOW)
    assert plain.hash == tracked.hash


def test_normalize_records_drops_gated_snapshots():
    snapshots = [_snapshot(), _snapshot(headline=""), _snapshot(headline="Other")]
    creatives = normalize_records(snapshots, now=NOW)
    assert [c.headline for c in creatives] == ["Headline 1", "Other"]
