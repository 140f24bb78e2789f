from datetime import datetime, timedelta, timezone

from download_access.core.clock import to_aware_utc, utcnow


def test_to_aware_utc_handles_none_and_naive_and_aware():
    assert to_aware_utc(None) is None

    naive = datetime(2024, 1, 1, 0, 0, 0)
    aware = to_aware_utc(naive)
    assert aware.tzinfo is not None
    assert aware.tzinfo == timezone.utc

    aware_in = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
    aware_out = to_aware_utc(aware_in)
    assert aware_out == aware_in


def test_to_aware_utc_converts_other_offsets():
    plus_two = timezone(timedelta(hours=2))
    value = datetime(2024, 1, 1, 12, 0, 0, tzinfo=plus_two)
    converted = to_aware_utc(value)
    assert converted.tzinfo == timezone.utc
    assert converted.hour == 10


def test_utcnow_is_aware():
    assert utcnow().tzinfo == timezone.utc
