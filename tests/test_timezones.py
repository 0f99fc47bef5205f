from datetime import date, datetime, timedelta, timezone

import pytest

from timeclock.errors import ValidationError
from timeclock.timezones import (
    DISPLAY_OFFSETS,
    canonical_date_label,
    duration_minutes,
    format_minutes,
    parse_date_label,
    parse_date_range,
    parse_user_time,
    previous_date_label,
    to_canonical,
    to_display,
)


def test_to_canonical_shifts_wall_clock_by_four_hours() -> None:
    instant = datetime(2026, 2, 1, 22, 30, tzinfo=timezone.utc)

    canonical = to_canonical(instant)

    assert canonical == instant
    assert canonical.utcoffset() == timedelta(hours=4)
    assert (canonical.year, canonical.month, canonical.day, canonical.hour) == (2026, 2, 2, 2)


def test_date_label_uses_storage_timezone() -> None:
    # 21:00 UTC is already the next day in UTC+4.
    assert canonical_date_label(datetime(2026, 2, 1, 21, 0, tzinfo=timezone.utc)) == "2026-02-02"
    assert canonical_date_label(datetime(2026, 2, 1, 19, 59, tzinfo=timezone.utc)) == "2026-02-01"


def test_naive_values_are_treated_as_utc() -> None:
    assert to_canonical(datetime(2026, 2, 1, 10, 0)) == datetime(2026, 2, 1, 10, 0, tzinfo=timezone.utc)
    assert to_display(datetime(2026, 2, 1, 10, 0), "Asia/Tokyo").hour == 19


def test_display_round_trip_for_every_table_zone() -> None:
    for zone_id, offset in DISPLAY_OFFSETS.items():
        local = datetime(2026, 3, 10, 9, 15, tzinfo=timezone(offset))

        shown = to_display(to_canonical(local), zone_id)

        assert shown == local
        assert shown.utcoffset() == offset
        assert (shown.hour, shown.minute) == (9, 15)


def test_half_hour_zone() -> None:
    canonical = to_canonical(datetime(2026, 3, 10, 0, 0, tzinfo=timezone.utc))

    shown = to_display(canonical, "Asia/Kolkata")

    assert (shown.hour, shown.minute) == (5, 30)


def test_unknown_or_missing_zone_displays_utc() -> None:
    canonical = to_canonical(datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc))

    for zone_id in (None, "", "Mars/Olympus_Mons"):
        shown = to_display(canonical, zone_id)
        assert shown.utcoffset() == timedelta(0)
        assert shown.hour == 12


def test_daylight_saving_is_not_applied() -> None:
    # Mid-July New York is EDT (-4) in reality; the table keeps it at -5.
    canonical = to_canonical(datetime(2026, 7, 15, 16, 0, tzinfo=timezone.utc))

    assert to_display(canonical, "America/New_York").hour == 11


def test_duration_rounds_half_up() -> None:
    start = datetime(2026, 2, 1, 10, 0, 0, tzinfo=timezone.utc)

    assert duration_minutes(start, start + timedelta(seconds=90)) == 2
    assert duration_minutes(start, start + timedelta(seconds=89)) == 1
    assert duration_minutes(start, start + timedelta(seconds=30)) == 1
    assert duration_minutes(start, start + timedelta(seconds=29)) == 0
    assert duration_minutes(start, start + timedelta(hours=8)) == 480


def test_parse_date_label() -> None:
    assert parse_date_label("2026-02-01") == "2026-02-01"

    for bad in (None, "", "2026-2-01", "01/02/2026", "2026-02-30"):
        with pytest.raises(ValidationError):
            parse_date_label(bad)


def test_parse_date_range_requires_order() -> None:
    assert parse_date_range("2026-02-01", "2026-02-01") == ("2026-02-01", "2026-02-01")

    with pytest.raises(ValidationError):
        parse_date_range("2026-02-02", "2026-02-01")


def test_parse_user_time_uses_display_zone() -> None:
    parsed = parse_user_time("09:00", "Asia/Tokyo", on_day=date(2026, 2, 1))

    assert parsed == datetime(2026, 2, 1, 0, 0, tzinfo=timezone.utc)
    assert canonical_date_label(parsed) == "2026-02-01"

    iso = parse_user_time("2026-02-01T17:30", None, on_day=date(2000, 1, 1))
    assert iso == datetime(2026, 2, 1, 17, 30, tzinfo=timezone.utc)

    with pytest.raises(ValidationError):
        parse_user_time("25:00", None, on_day=date(2026, 2, 1))
    with pytest.raises(ValidationError):
        parse_user_time("nine", None, on_day=date(2026, 2, 1))


def test_previous_date_label() -> None:
    assert previous_date_label(datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)) == "2026-02-28"


def test_format_minutes() -> None:
    assert format_minutes(0) == "0h 00m"
    assert format_minutes(125) == "2h 05m"
    assert format_minutes(-3) == "0h 00m"
