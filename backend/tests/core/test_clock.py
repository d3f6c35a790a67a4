"""Clock — verifies naive timestamps from SQLite are read as UTC."""

from datetime import datetime, timedelta, timezone

from tutorassist.core.clock import as_utc, iso, utcnow


def test_utcnow_is_aware():
    assert utcnow().tzinfo is not None


def test_naive_values_are_treated_as_utc():
    naive = datetime(2026, 3, 2, 9, 30)
    assert as_utc(naive) == datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def test_aware_values_are_converted():
    plus_two = datetime(2026, 3, 2, 11, 30, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(plus_two) == datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def test_iso_passes_none_through():
    assert iso(None) is None
    assert iso(datetime(2026, 3, 2)) == "2026-03-02T00:00:00+00:00"
