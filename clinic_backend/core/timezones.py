"""Clinic timezone resolution and UTC <-> clinic-local conversion.

Appointments are stored as UTC instants while doctors describe their week in
the wall-clock time of their clinic. All conversions go through the IANA
database (``zoneinfo``) so DST shifts are applied per date, never as a fixed
offset.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from clinic_backend.core import config

logger = logging.getLogger(__name__)

UTC = timezone.utc


def resolve_zone(timezone_name: str | None) -> ZoneInfo:
    """Return the zone for ``timezone_name``, falling back instead of failing.

    Bad clinic data must not break the booking flow, so unknown names fall
    back to ``DEFAULT_CLINIC_TIMEZONE`` (and then UTC) with a warning.
    """
    name = (timezone_name or '').strip()
    if name:
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError, OSError):
            logger.warning('Unknown clinic timezone %r, falling back to %s.', timezone_name, config.DEFAULT_CLINIC_TIMEZONE)
    else:
        logger.warning('Clinic has no timezone configured, falling back to %s.', config.DEFAULT_CLINIC_TIMEZONE)

    try:
        return ZoneInfo(config.DEFAULT_CLINIC_TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        logger.warning('DEFAULT_CLINIC_TIMEZONE %r is invalid, using UTC.', config.DEFAULT_CLINIC_TIMEZONE)
        return ZoneInfo('UTC')


def ensure_utc(instant: datetime) -> datetime:
    # Naive datetimes are taken as UTC.
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def local_weekday(day: date) -> int:
    """Weekday of a calendar date, 0=Sunday .. 6=Saturday."""
    return day.isoweekday() % 7


def _as_zone(tz: ZoneInfo | str | None) -> ZoneInfo:
    if isinstance(tz, ZoneInfo):
        return tz
    return resolve_zone(tz)


def to_local(instant: datetime, tz: ZoneInfo | str | None) -> datetime:
    return ensure_utc(instant).astimezone(_as_zone(tz))


def local_weekday_and_clock(instant: datetime, tz: ZoneInfo | str | None) -> tuple[int, int, int]:
    local = to_local(instant, tz)
    return local_weekday(local.date()), local.hour, local.minute


def to_utc(day: date, hour: int, minute: int, tz: ZoneInfo | str | None) -> datetime:
    """UTC instant of the wall-clock ``hour:minute`` on ``day`` in ``tz``.

    Times inside a spring-forward gap use the offset in force before the
    transition; ambiguous fall-back times resolve to their first occurrence.
    """
    local = datetime.combine(day, time(hour, minute), tzinfo=_as_zone(tz))
    return local.astimezone(UTC)


def wall_clock_to_utc(day: date, clock: time, zone: ZoneInfo) -> datetime:
    return to_utc(day, clock.hour, clock.minute, zone)


def local_day_bounds(day: date, zone: ZoneInfo) -> tuple[datetime, datetime]:
    """UTC instants of local midnight on ``day`` and on the day after."""
    return to_utc(day, 0, 0, zone), to_utc(day + timedelta(days=1), 0, 0, zone)
