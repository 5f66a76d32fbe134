from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from conftest import MONDAY, SUNDAY, TUESDAY, add_appointment, add_clinic, add_doctor, add_time_off, add_window
from clinic_backend.core.errors import ValidationError
from clinic_backend.models.appointment import AppointmentStatus
from clinic_backend.services.booking import create_appointment
from clinic_backend.services.slots import Slot, available_slots, generate_slots

UTC = timezone.utc
NEW_YORK = ZoneInfo('America/New_York')
WINTER_MONDAY = date(2026, 1, 5)
SUMMER_MONDAY = date(2026, 7, 6)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=UTC)


def assert_well_formed(slots: list[Slot]) -> None:
    for slot in slots:
        assert slot.end - slot.start == timedelta(minutes=30)
    for previous, current in zip(slots, slots[1:]):
        assert previous.end <= current.start


def test_monday_morning_in_new_york_yields_six_slots(db, new_york_doctor) -> None:
    slots = available_slots(new_york_doctor.id, WINTER_MONDAY, db)

    assert [slot.start for slot in slots] == [
        utc(2026, 1, 5, 14, 0),
        utc(2026, 1, 5, 14, 30),
        utc(2026, 1, 5, 15, 0),
        utc(2026, 1, 5, 15, 30),
        utc(2026, 1, 5, 16, 0),
        utc(2026, 1, 5, 16, 30),
    ]
    assert slots[-1].end == utc(2026, 1, 5, 17, 0)
    assert_well_formed(slots)


def test_summer_dates_use_daylight_offset(db, new_york_doctor) -> None:
    slots = available_slots(new_york_doctor.id, SUMMER_MONDAY, db)

    assert len(slots) == 6
    assert slots[0].start == utc(2026, 7, 6, 13, 0)


def test_day_without_windows_is_empty_not_an_error(db, new_york_doctor) -> None:
    assert available_slots(new_york_doctor.id, date(2026, 1, 6), db) == []


def test_unknown_doctor_is_a_validation_error(db) -> None:
    with pytest.raises(ValidationError):
        available_slots(404, WINTER_MONDAY, db)


def test_spring_forward_day_keeps_the_full_local_span(db) -> None:
    clinic = add_clinic(db, 'America/New_York')
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, SUNDAY, time(9, 0), time(17, 0))

    slots = available_slots(doctor.id, date(2026, 3, 8), db)

    assert len(slots) == 16
    assert slots[0].start == utc(2026, 3, 8, 13, 0)
    assert slots[-1].end == utc(2026, 3, 8, 21, 0)
    assert_well_formed(slots)


def test_fall_back_day_keeps_the_full_local_span(db) -> None:
    clinic = add_clinic(db, 'America/New_York')
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, SUNDAY, time(9, 0), time(17, 0))

    slots = available_slots(doctor.id, date(2026, 11, 1), db)

    assert len(slots) == 16
    assert slots[0].start == utc(2026, 11, 1, 14, 0)


def test_window_across_the_dst_gap_walks_elapsed_time() -> None:
    # 01:00-04:00 local on spring-forward day is only two real hours.
    slots = list(generate_slots([(time(1, 0), time(4, 0))], date(2026, 3, 8), NEW_YORK))

    assert [slot.start for slot in slots] == [
        utc(2026, 3, 8, 6, 0),
        utc(2026, 3, 8, 6, 30),
        utc(2026, 3, 8, 7, 0),
        utc(2026, 3, 8, 7, 30),
    ]


def test_weekday_is_taken_in_clinic_local_time(db) -> None:
    clinic = add_clinic(db, 'Asia/Tokyo')
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, MONDAY, time(8, 0), time(9, 0))

    slots = available_slots(doctor.id, WINTER_MONDAY, db)

    # Monday 08:00 in Tokyo is Sunday 23:00 UTC.
    assert [slot.start for slot in slots] == [utc(2026, 1, 4, 23, 0), utc(2026, 1, 4, 23, 30)]
    assert available_slots(doctor.id, date(2026, 1, 4), db) == []


@pytest.mark.parametrize('timezone_name', ['Not/AZone', 'America', 'Etc'])
def test_invalid_clinic_timezone_falls_back_to_utc(db, timezone_name: str) -> None:
    clinic = add_clinic(db, timezone_name)
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, MONDAY, time(9, 0), time(10, 0))

    slots = available_slots(doctor.id, WINTER_MONDAY, db)

    assert [slot.start for slot in slots] == [utc(2026, 1, 5, 9, 0), utc(2026, 1, 5, 9, 30)]


def test_partial_trailing_slot_is_not_emitted() -> None:
    slots = list(generate_slots([(time(9, 0), time(10, 15))], WINTER_MONDAY, NEW_YORK))

    assert len(slots) == 2
    assert slots[-1].end == utc(2026, 1, 5, 15, 0)


def test_adjacent_windows_align_to_their_own_starts() -> None:
    slots = list(generate_slots(
        [(time(9, 0), time(10, 15)), (time(10, 15), time(11, 15))],
        WINTER_MONDAY,
        NEW_YORK,
    ))

    assert [slot.start for slot in slots] == [
        utc(2026, 1, 5, 14, 0),
        utc(2026, 1, 5, 14, 30),
        utc(2026, 1, 5, 15, 15),
        utc(2026, 1, 5, 15, 45),
    ]


def test_windows_are_emitted_in_chronological_order_and_never_overlap() -> None:
    slots = list(generate_slots(
        [(time(14, 0), time(15, 0)), (time(9, 0), time(10, 0)), (time(9, 15), time(10, 15))],
        WINTER_MONDAY,
        NEW_YORK,
    ))

    starts = [slot.start for slot in slots]
    assert starts == sorted(starts)
    assert_well_formed(slots)


def test_time_off_covering_the_window_empties_the_day(db, new_york_doctor) -> None:
    add_time_off(db, new_york_doctor, utc(2026, 1, 5, 13, 0), utc(2026, 1, 5, 18, 0))

    assert available_slots(new_york_doctor.id, WINTER_MONDAY, db) == []


def test_partial_time_off_removes_only_intersecting_slots(db, new_york_doctor) -> None:
    add_time_off(db, new_york_doctor, utc(2026, 1, 5, 15, 10), utc(2026, 1, 5, 15, 40))

    starts = [slot.start for slot in available_slots(new_york_doctor.id, WINTER_MONDAY, db)]

    assert utc(2026, 1, 5, 15, 0) not in starts
    assert utc(2026, 1, 5, 15, 30) not in starts
    assert len(starts) == 4


def test_time_off_touching_a_slot_boundary_does_not_block_it(db, new_york_doctor) -> None:
    add_time_off(db, new_york_doctor, utc(2026, 1, 5, 10, 0), utc(2026, 1, 5, 14, 0))

    assert len(available_slots(new_york_doctor.id, WINTER_MONDAY, db)) == 6


@pytest.mark.parametrize(
    ('status', 'blocks'),
    [
        (AppointmentStatus.SCHEDULED, True),
        (AppointmentStatus.CONFIRMED, True),
        (AppointmentStatus.COMPLETED, True),
        (AppointmentStatus.CANCELLED, False),
        (AppointmentStatus.DECLINED, False),
        (AppointmentStatus.NO_SHOW, False),
    ],
)
def test_only_active_appointments_block_slots(db, new_york_doctor, status: AppointmentStatus, blocks: bool) -> None:
    add_appointment(db, new_york_doctor, utc(2026, 1, 5, 14, 30), status=status)

    starts = [slot.start for slot in available_slots(new_york_doctor.id, WINTER_MONDAY, db)]

    assert (utc(2026, 1, 5, 14, 30) not in starts) is blocks


def test_other_doctors_bookings_do_not_block(db, new_york_doctor) -> None:
    clinic = add_clinic(db, 'America/New_York')
    other = add_doctor(db, clinic, user_id='doctor-user-2')
    add_appointment(db, other, utc(2026, 1, 5, 14, 0))

    assert len(available_slots(new_york_doctor.id, WINTER_MONDAY, db)) == 6


def test_not_before_hides_slots_that_already_started(db, new_york_doctor) -> None:
    slots = available_slots(new_york_doctor.id, WINTER_MONDAY, db, not_before=utc(2026, 1, 5, 15, 10))

    assert [slot.start for slot in slots] == [utc(2026, 1, 5, 15, 30), utc(2026, 1, 5, 16, 0), utc(2026, 1, 5, 16, 30)]


def test_repeated_calls_return_identical_results(db, new_york_doctor) -> None:
    add_appointment(db, new_york_doctor, utc(2026, 1, 5, 15, 0))

    assert available_slots(new_york_doctor.id, WINTER_MONDAY, db) == available_slots(new_york_doctor.id, WINTER_MONDAY, db)


def test_generate_slots_can_be_rerun_from_the_same_snapshot() -> None:
    windows = [(time(9, 0), time(12, 0))]
    blocked = [(utc(2026, 1, 5, 15, 0), utc(2026, 1, 5, 15, 30))]

    first = list(generate_slots(windows, WINTER_MONDAY, NEW_YORK, blocked))
    second = list(generate_slots(windows, WINTER_MONDAY, NEW_YORK, blocked))

    assert first == second
    assert len(first) == 5


def test_booked_slot_disappears_from_the_listing(db, new_york_doctor) -> None:
    before = available_slots(new_york_doctor.id, WINTER_MONDAY, db)

    create_appointment(new_york_doctor.id, new_york_doctor.clinic_id, 'patient-1', before[2].start, db)
    after = available_slots(new_york_doctor.id, WINTER_MONDAY, db)

    assert before[2] not in after
    assert len(after) == len(before) - 1


def test_every_listed_slot_is_bookable(db) -> None:
    clinic = add_clinic(db, 'America/New_York')
    doctor = add_doctor(db, clinic)
    add_window(db, doctor, TUESDAY, time(8, 0), time(9, 30))
    add_window(db, doctor, TUESDAY, time(13, 15), time(14, 15))

    slots = available_slots(doctor.id, date(2026, 1, 6), db)
    assert len(slots) == 5

    for index, slot in enumerate(slots):
        appointment = create_appointment(doctor.id, clinic.id, f'patient-{index}', slot.start, db)
        assert appointment.start_at == slot.start
        assert appointment.end_at == slot.end

    assert available_slots(doctor.id, date(2026, 1, 6), db) == []
