"""Bookable slot computation.

Slots are fixed 30-minute intervals walked from the start of each weekly
window, converted to UTC for the specific calendar date so DST offsets are
right on every day of the year.
"""

import heapq
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from clinic_backend.core.errors import ValidationError
from clinic_backend.core.timezones import ensure_utc, local_day_bounds, local_weekday, wall_clock_to_utc
from clinic_backend.services import availability_store

SLOT_DURATION_MINUTES = 30
SLOT_DURATION = timedelta(minutes=SLOT_DURATION_MINUTES)


@dataclass(frozen=True, order=True)
class Slot:
    start: datetime
    end: datetime


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    # Half-open intervals: touching ends do not overlap.
    return start < other_end and end > other_start


def window_bounds(day: date, start_time: time, end_time: time, zone: ZoneInfo) -> tuple[datetime, datetime]:
    return wall_clock_to_utc(day, start_time, zone), wall_clock_to_utc(day, end_time, zone)


def _window_slots(window_start: datetime, window_end: datetime) -> Iterator[Slot]:
    cursor = window_start
    while cursor + SLOT_DURATION <= window_end:
        yield Slot(cursor, cursor + SLOT_DURATION)
        cursor += SLOT_DURATION


def generate_slots(
    windows: Iterable[tuple[time, time]],
    day: date,
    zone: ZoneInfo,
    blocked: Iterable[tuple[datetime, datetime]] = (),
) -> Iterator[Slot]:
    """Yield the free slots of ``day`` in ascending order.

    ``windows`` are local (start, end) wall-clock pairs for the day's weekday
    and ``blocked`` are UTC intervals (time off and busy appointments).
    Each window is stepped independently from its own start; a slot that
    would overlap the previously yielded one is skipped, which only happens
    when stored windows overlap each other.
    """
    blocked_ranges = [(ensure_utc(start), ensure_utc(end)) for start, end in blocked]
    per_window = [
        _window_slots(*window_bounds(day, start_time, end_time, zone))
        for start_time, end_time in windows
    ]

    last_end: datetime | None = None
    for slot in heapq.merge(*per_window):
        if last_end is not None and slot.start < last_end:
            continue
        if any(overlaps(slot.start, slot.end, start, end) for start, end in blocked_ranges):
            continue
        last_end = slot.end
        yield slot


def available_slots(doctor_id: int, day: date, db: Session, not_before: datetime | None = None) -> list[Slot]:
    """Free slots for ``doctor_id`` on the clinic-local calendar date ``day``.

    ``not_before`` drops slots starting earlier than that instant.
    """
    doctor = availability_store.get_doctor(doctor_id, db)
    if doctor is None:
        raise ValidationError('Doctor not found.')

    zone = availability_store.get_clinic_zone(doctor, db)
    windows = availability_store.windows_for_weekday(doctor.id, local_weekday(day), db)
    if not windows:
        return []

    day_start, day_end = local_day_bounds(day, zone)
    blocked = [
        (time_off.start_at, time_off.end_at)
        for time_off in availability_store.time_off_overlapping(doctor.id, day_start, day_end, db)
    ]
    blocked.extend(
        (appointment.start_at, appointment.end_at)
        for appointment in availability_store.busy_appointments(doctor.id, day_start, day_end, db)
    )

    slots = generate_slots(
        [(window.start_time, window.end_time) for window in windows],
        day,
        zone,
        blocked,
    )
    if not_before is not None:
        cutoff = ensure_utc(not_before)
        return [slot for slot in slots if slot.start >= cutoff]
    return list(slots)
