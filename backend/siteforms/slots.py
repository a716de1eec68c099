from __future__ import annotations

from dataclasses import dataclass
from typing import FrozenSet, Iterator

FIRST_HOUR = 9
LAST_HOUR = 17


@dataclass(frozen=True)
class TimeSlot:
    value: str  # HH:00
    label: str  # H:00 AM/PM


def _label(hour: int) -> str:
    period = "PM" if hour >= 12 else "AM"
    display_hour = hour - 12 if hour > 12 else hour
    return f"{display_hour}:00 {period}"


def generate_time_slots() -> Iterator[TimeSlot]:
    """Hourly demo slots, 9 AM to 5 PM inclusive."""
    for hour in range(FIRST_HOUR, LAST_HOUR + 1):
        yield TimeSlot(value=f"{hour:02d}:00", label=_label(hour))


TIME_SLOTS = tuple(generate_time_slots())


def slot_values() -> FrozenSet[str]:
    return frozenset(s.value for s in TIME_SLOTS)
