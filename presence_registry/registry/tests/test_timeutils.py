from datetime import datetime, timedelta, timezone

from presence_registry.shared.utils.timeutils import ensure_utc, format_timestamp


def test_ensure_utc_treats_naive_as_utc():
    assert ensure_utc(datetime(2024, 3, 1, 12, 0)) == datetime(
        2024, 3, 1, 12, 0, tzinfo=timezone.utc
    )


def test_ensure_utc_converts_offsets():
    value = datetime(2024, 3, 1, 13, 0, tzinfo=timezone(timedelta(hours=1)))

    converted = ensure_utc(value)

    assert converted.utcoffset() == timedelta(0)
    assert converted.hour == 12


def test_format_timestamp_converts_to_utc():
    value = datetime(2024, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(value) == "2024-03-01T12:00:00+00:00"
