from __future__ import annotations

import math
import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Protocol

from .errors import ValidationError

# All persisted instants are expressed in this fixed offset (Dubai time).
STORAGE_OFFSET = timedelta(hours=4)
STORAGE_TZ = timezone(STORAGE_OFFSET, "UTC+04:00")

# Fixed offsets only. Daylight saving is not modelled, so e.g. New York is
# always rendered as EST (-5) and Sydney as AEST (+10).
DISPLAY_OFFSETS: dict[str, timedelta] = {
    "America/New_York": timedelta(hours=-5),
    "America/Chicago": timedelta(hours=-6),
    "America/Denver": timedelta(hours=-7),
    "America/Los_Angeles": timedelta(hours=-8),
    "Europe/London": timedelta(0),
    "Europe/Paris": timedelta(hours=1),
    "Europe/Berlin": timedelta(hours=1),
    "Asia/Dubai": timedelta(hours=4),
    "Asia/Tokyo": timedelta(hours=9),
    "Asia/Shanghai": timedelta(hours=8),
    "Asia/Kolkata": timedelta(hours=5, minutes=30),
    "Australia/Sydney": timedelta(hours=10),
    "Australia/Melbourne": timedelta(hours=10),
    "UTC": timedelta(0),
}

DATE_LABEL_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CLOCK_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return utc_now()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ensure_aware(instant: datetime) -> datetime:
    # Naive values are treated as UTC.
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


def is_known_zone(zone_id: str | None) -> bool:
    return zone_id in DISPLAY_OFFSETS


def display_offset(zone_id: str | None) -> timedelta:
    """Return the fixed UTC offset for a display zone, UTC when unknown."""
    if not zone_id:
        return timedelta(0)
    return DISPLAY_OFFSETS.get(zone_id, timedelta(0))


def display_tz(zone_id: str | None) -> timezone:
    offset = display_offset(zone_id)
    if not offset:
        return timezone.utc
    return timezone(offset)


def to_canonical(instant: datetime) -> datetime:
    """Express an instant in the storage timezone (UTC+4)."""
    return _ensure_aware(instant).astimezone(STORAGE_TZ)


def to_display(canonical: datetime, zone_id: str | None) -> datetime:
    """Render a stored instant in a viewer's display timezone."""
    utc_value = _ensure_aware(canonical).astimezone(timezone.utc)
    return utc_value.astimezone(display_tz(zone_id))


def canonical_date_label(instant: datetime) -> str:
    return to_canonical(instant).date().isoformat()


def localize(wall_clock: datetime, zone_id: str | None) -> datetime:
    """Attach a display zone's offset to a naive wall-clock value entered by a user."""
    if wall_clock.tzinfo is not None:
        return wall_clock
    return wall_clock.replace(tzinfo=display_tz(zone_id))


def parse_date_label(value: str | None, field_name: str = "date") -> str:
    if not value or not DATE_LABEL_RE.match(value):
        raise ValidationError(f"{field_name} must use the YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field_name} is not a valid calendar date: {value}") from exc
    return value


def parse_date_range(start_value: str | None, end_value: str | None) -> tuple[str, str]:
    start_label = parse_date_label(start_value, "startDate")
    end_label = parse_date_label(end_value, "endDate")
    # Fixed-width labels order lexicographically.
    if start_label > end_label:
        raise ValidationError("startDate must be on or before endDate")
    return start_label, end_label


def parse_user_time(value: str, zone_id: str | None, *, on_day: date) -> datetime:
    """Parse `HH:MM` (on `on_day`) or an ISO timestamp typed in the user's display zone."""
    text = value.strip()
    match = CLOCK_TIME_RE.match(text)
    if match:
        hours, minutes = int(match.group(1)), int(match.group(2))
        if hours > 23 or minutes > 59:
            raise ValidationError(f"Invalid time of day: {value}")
        return localize(datetime.combine(on_day, time(hours, minutes)), zone_id)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValidationError(f"Expected HH:MM or an ISO timestamp, got: {value}") from exc
    return localize(parsed, zone_id)


def local_today(now: datetime, zone_id: str | None) -> date:
    return to_display(now, zone_id).date()


def previous_date_label(now: datetime) -> str:
    return canonical_date_label(now - timedelta(days=1))


def duration_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes between two instants, rounding half up (90s -> 2)."""
    seconds = (_ensure_aware(end) - _ensure_aware(start)).total_seconds()
    return round_half_up(seconds / 60)


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def format_minutes(total_minutes: int | float) -> str:
    """Render a minute count as `Hh MMm` for chat replies."""
    safe_minutes = max(0, round_half_up(total_minutes))
    hours, minutes = divmod(safe_minutes, 60)
    return f"{hours}h {minutes:02}m"
