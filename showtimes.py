"""Time-of-day handling for showtime slots.

Slots are stored as display strings such as "10:00 AM". They are ordered by
the clock time they name, and on the current day a slot stays listed until
its end boundary (start + show duration) has passed.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Sequence

SLOT_FORMATS = ("%I:%M %p", "%H:%M")


def parse_time_slot(value: str) -> time:
    """Parse "10:00 AM", "1:00 pm" or "22:00" into a time of day."""
    text = " ".join(value.strip().upper().split())
    for fmt in SLOT_FORMATS:
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise ValueError(f"unrecognised time of day: {value!r}")


def parse_show_date(value: str) -> date:
    return date.fromisoformat(value.strip())


def order_showtimes(showtimes: Iterable) -> List:
    return sorted(showtimes, key=lambda slot: parse_time_slot(slot.time_slot))


def end_boundary(show_date: date, time_slot: str, duration: timedelta) -> datetime:
    return datetime.combine(show_date, parse_time_slot(time_slot)) + duration


def upcoming_showtimes(showtimes: Sequence, show_date: date, now: datetime,
                       duration: timedelta) -> List:
    """Order the slots and, when show_date is today, drop the ones already over."""
    ordered = order_showtimes(showtimes)
    if show_date != now.date():
        return ordered

    return [slot for slot in ordered if end_boundary(show_date, slot.time_slot, duration) >= now]
