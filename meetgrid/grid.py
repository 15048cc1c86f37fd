"""Slot grid generation shared by the availability controller and aggregation.

An event's grid is the product of its inclusive date range and the time
slots inside its daily window. Slot coordinates are never stored; they are
recomputed from the event fields whenever needed.
"""

import re
from datetime import date, time, timedelta
from typing import NamedTuple

from meetgrid.errors import ValidationError

SLOT_MINUTES = 30
MAX_RANGE_DAYS = 7
SLOT_KEY_SEPARATOR = "T"

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_RE = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d(?::[0-5]\d)?$")
SLOT_KEY_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T(?:[01]\d|2[0-3]):[0-5]\d$")

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


class SlotCoordinate(NamedTuple):
    date: date
    time: time

    @property
    def key(self) -> str:
        """Stable key such as ``2024-01-01T09:00``."""
        return f"{format_date(self.date)}{SLOT_KEY_SEPARATOR}{format_time(self.time)}"

    @classmethod
    def from_key(cls, key: str) -> "SlotCoordinate":
        if not SLOT_KEY_RE.match(key):
            raise ValidationError(detail=f"Invalid slot: {key}")
        date_part, time_part = key.split(SLOT_KEY_SEPARATOR)
        return cls(parse_date(date_part), parse_time(time_part))

    def __str__(self) -> str:
        return self.key


def parse_date(value: str) -> date:
    if not DATE_RE.match(value):
        raise ValidationError(detail=f"Invalid date: {value}")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(detail=f"Invalid date: {value}") from None


def parse_time(value: str) -> time:
    """Parse ``HH:MM``, or ``HH:MM:SS`` with zero seconds."""
    if not TIME_RE.match(value):
        raise ValidationError(detail=f"Invalid time: {value}")
    hour, minute, *seconds = value.split(":")
    if seconds and int(seconds[0]):
        raise ValidationError(detail=f"Invalid time: {value}")
    return time(int(hour), int(minute))


def format_date(d: date) -> str:
    return d.isoformat()


def format_time(t: time) -> str:
    return f"{t.hour:02d}:{t.minute:02d}"


def _minutes(t: time) -> int:
    return t.hour * 60 + t.minute


def generate_dates(start_date: date, end_date: date) -> list[date]:
    """Every calendar date from start_date to end_date, both included."""
    return [start_date + timedelta(days=i) for i in range((end_date - start_date).days + 1)]


def generate_time_slots(start_time: time, end_time: time, slot_minutes: int = SLOT_MINUTES) -> list[time]:
    """Slot start times from start_time, stopping strictly before end_time."""
    slots: list[time] = []
    current = _minutes(start_time)
    end = _minutes(end_time)
    while current < end:
        slots.append(time(current // 60, current % 60))
        current += slot_minutes
    return slots


def time_axis_labels(start_time: time, end_time: time, slot_minutes: int = SLOT_MINUTES) -> list[time]:
    """Time slots plus the trailing end_time label, which is not selectable."""
    return generate_time_slots(start_time, end_time, slot_minutes) + [end_time]


def generate_grid(
    start_date: date,
    end_date: date,
    start_time: time,
    end_time: time,
    slot_minutes: int = SLOT_MINUTES,
) -> list[SlotCoordinate]:
    times = generate_time_slots(start_time, end_time, slot_minutes)
    return [SlotCoordinate(d, t) for d in generate_dates(start_date, end_date) for t in times]


def validate_window(
    start_date: date,
    end_date: date,
    start_time: time,
    end_time: time,
    max_range_days: int = MAX_RANGE_DAYS,
    slot_minutes: int = SLOT_MINUTES,
) -> None:
    """Raise ValidationError unless the date range and time window form a valid grid."""
    if end_date < start_date:
        raise ValidationError(detail="End date must be on or after the start date")
    if (end_date - start_date).days > max_range_days:
        raise ValidationError(detail=f"Date range can span at most {max_range_days} days")
    if end_time <= start_time:
        raise ValidationError(detail="End time must be after the start time")
    for label, t in (("Start", start_time), ("End", end_time)):
        if t.second or t.microsecond or t.minute % slot_minutes:
            raise ValidationError(detail=f"{label} time must fall on a {slot_minutes}-minute boundary")


def format_time_label(t: time) -> str:
    """12-hour label used on the time axis, e.g. ``9:30 AM``."""
    ampm = "PM" if t.hour >= 12 else "AM"
    display_hour = t.hour % 12 or 12
    return f"{display_hour}:{t.minute:02d} {ampm}"


def format_date_label(d: date) -> dict[str, str | int]:
    month = _MONTHS[d.month - 1]
    return {
        "day": _DAYS[d.weekday()],
        "date": d.day,
        "month": month,
        "full": f"{month} {d.day}, {d.year}",
    }


def grid_payload(
    start_date: date,
    end_date: date,
    start_time: time,
    end_time: time,
    slot_minutes: int = SLOT_MINUTES,
) -> dict[str, list]:
    """JSON-friendly description of an event grid for clients."""
    dates = generate_dates(start_date, end_date)
    return {
        "dates": [{"value": format_date(d), **format_date_label(d)} for d in dates],
        "time_slots": [format_time(t) for t in generate_time_slots(start_time, end_time, slot_minutes)],
        "time_labels": [
            {"value": format_time(t), "label": format_time_label(t)}
            for t in time_axis_labels(start_time, end_time, slot_minutes)
        ],
        "slots": [s.key for s in generate_grid(start_date, end_date, start_time, end_time, slot_minutes)],
    }
