from datetime import time

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from lesson_scheduling.core.errors import NotFound, PermissionDenied, SlotConflict, ValidationFailed
from lesson_scheduling.models import EntityType, ScheduleSlot
from lesson_scheduling.services.slots import (
    initialize_schedule,
    list_slots,
    release_request_slots,
    reserve_slot,
    set_slot_availability,
)

from conftest import ADMIN, LESSON_DAY, NINE


def _slot(db, entity_type, entity_id, start=NINE):
    db.expire_all()
    return (
        db.query(ScheduleSlot)
        .filter(
            ScheduleSlot.entity_type == entity_type,
            ScheduleSlot.entity_id == entity_id,
            ScheduleSlot.date == LESSON_DAY,
            ScheduleSlot.start_time == start,
        )
        .one()
    )


def test_initialize_creates_one_slot_per_hour_per_day(db, make_cfi):
    cfi = make_cfi()

    result = initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY, num_days=3, start_hour=8, end_hour=12)

    assert result == {"created": 12, "skipped": 0}
    slots = list_slots(db, EntityType.CFI, cfi.id, LESSON_DAY, LESSON_DAY)
    assert [s.start_time for s in slots] == [time(8), time(9), time(10), time(11)]
    assert [s.end_time for s in slots] == [time(9), time(10), time(11), time(12)]
    assert all(s.is_available for s in slots)


def test_reinitializing_keeps_existing_slots(db, make_aircraft):
    aircraft = make_aircraft()
    initialize_schedule(db, ADMIN, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, num_days=1, start_hour=8, end_hour=10)
    blocked = _slot(db, EntityType.AIRCRAFT, aircraft.id, time(8))
    set_slot_availability(db, ADMIN, blocked.id, False)

    result = initialize_schedule(
        db, ADMIN, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, num_days=1, start_hour=8, end_hour=12
    )

    assert result == {"created": 2, "skipped": 2}
    assert db.query(ScheduleSlot).count() == 4
    assert _slot(db, EntityType.AIRCRAFT, aircraft.id, time(8)).is_available is False


def test_initialize_uses_configured_defaults(db, make_cfi):
    cfi = make_cfi()

    result = initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY)

    assert result == {"created": 7 * 10, "skipped": 0}


@pytest.mark.parametrize(
    "kwargs",
    [
        {"num_days": 0},
        {"num_days": 91},
        {"start_hour": 10, "end_hour": 10},
        {"start_hour": 12, "end_hour": 8},
        {"start_hour": 8, "end_hour": 24},
        {"start_hour": -1, "end_hour": 8},
    ],
)
def test_initialize_rejects_bad_windows(db, make_cfi, kwargs):
    cfi = make_cfi()
    with pytest.raises(ValidationFailed):
        initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY, **kwargs)
    assert db.query(ScheduleSlot).count() == 0


def test_initialize_unknown_entity(db):
    with pytest.raises(NotFound):
        initialize_schedule(db, ADMIN, EntityType.CFI, "missing", LESSON_DAY, num_days=1)


def test_instructor_manages_only_own_schedule(db, roster, make_cfi, cfi_actor, student_actor):
    other = make_cfi(name="Other", user_id="cfi-2")

    result = initialize_schedule(db, cfi_actor, EntityType.CFI, roster["cfi"].id, LESSON_DAY, num_days=1)
    assert result["created"] == 10

    with pytest.raises(PermissionDenied):
        initialize_schedule(db, cfi_actor, EntityType.CFI, other.id, LESSON_DAY, num_days=1)
    with pytest.raises(PermissionDenied):
        initialize_schedule(db, cfi_actor, EntityType.AIRCRAFT, roster["aircraft"].id, LESSON_DAY, num_days=1)
    with pytest.raises(PermissionDenied):
        initialize_schedule(db, student_actor, EntityType.CFI, roster["cfi"].id, LESSON_DAY, num_days=1)


def test_list_slots_rejects_inverted_range(db, make_cfi):
    cfi = make_cfi()
    with pytest.raises(ValidationFailed):
        list_slots(db, EntityType.CFI, cfi.id, LESSON_DAY, LESSON_DAY.replace(day=1))


def test_list_slots_only_available(db, make_cfi):
    cfi = make_cfi()
    initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY, num_days=1, start_hour=8, end_hour=10)
    set_slot_availability(db, ADMIN, _slot(db, EntityType.CFI, cfi.id, time(8)).id, False)

    open_slots = list_slots(db, EntityType.CFI, cfi.id, LESSON_DAY, LESSON_DAY, only_available=True)

    assert [s.start_time for s in open_slots] == [time(9)]


def test_reserve_creates_missing_slot(db, make_aircraft):
    aircraft = make_aircraft()

    reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, NINE, "req-a")
    db.commit()

    slot = _slot(db, EntityType.AIRCRAFT, aircraft.id)
    assert slot.is_available is False
    assert slot.lesson_request_id == "req-a"
    assert slot.end_time == time(10)


def test_reserve_takes_open_slot_once(db, make_aircraft):
    aircraft = make_aircraft()
    initialize_schedule(db, ADMIN, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, num_days=1, start_hour=9, end_hour=10)

    reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, NINE, "req-a")
    db.commit()
    # same holder again is a no-op
    reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, NINE, "req-a")
    db.commit()

    with pytest.raises(SlotConflict):
        reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, NINE, "req-b")
    db.rollback()

    assert _slot(db, EntityType.AIRCRAFT, aircraft.id).lesson_request_id == "req-a"


def test_reserve_refuses_blocked_slot(db, make_cfi):
    cfi = make_cfi()
    initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY, num_days=1, start_hour=9, end_hour=10)
    set_slot_availability(db, ADMIN, _slot(db, EntityType.CFI, cfi.id).id, False)

    with pytest.raises(SlotConflict):
        reserve_slot(db, EntityType.CFI, cfi.id, LESSON_DAY, NINE, "req-a")
    db.rollback()


def test_release_reopens_held_slots(db, make_cfi, make_aircraft):
    cfi = make_cfi()
    aircraft = make_aircraft()
    reserve_slot(db, EntityType.CFI, cfi.id, LESSON_DAY, NINE, "req-a")
    reserve_slot(db, EntityType.AIRCRAFT, aircraft.id, LESSON_DAY, NINE, "req-a")
    db.commit()

    assert release_request_slots(db, "req-a") == 2
    db.commit()

    slot = _slot(db, EntityType.CFI, cfi.id)
    assert slot.is_available is True
    assert slot.lesson_request_id is None


def test_cannot_unblock_slot_held_by_request(db, make_cfi):
    cfi = make_cfi()
    reserve_slot(db, EntityType.CFI, cfi.id, LESSON_DAY, NINE, "req-a")
    db.commit()

    with pytest.raises(SlotConflict):
        set_slot_availability(db, ADMIN, _slot(db, EntityType.CFI, cfi.id).id, True)


def test_unblock_from_outdated_copy_keeps_reservation(db, make_cfi):
    cfi = make_cfi()
    initialize_schedule(db, ADMIN, EntityType.CFI, cfi.id, LESSON_DAY, num_days=1, start_hour=9, end_hour=10)
    slot = _slot(db, EntityType.CFI, cfi.id)
    reserve_slot(db, EntityType.CFI, cfi.id, LESSON_DAY, NINE, "req-a")
    db.commit()
    db.refresh(slot)
    # the session still believes the slot is open, as if read before the reservation
    set_committed_value(slot, "is_available", True)
    set_committed_value(slot, "lesson_request_id", None)

    with pytest.raises(SlotConflict):
        set_slot_availability(db, ADMIN, slot.id, True)

    stored = _slot(db, EntityType.CFI, cfi.id)
    assert stored.is_available is False
    assert stored.lesson_request_id == "req-a"


def test_set_slot_availability_unknown_slot(db):
    with pytest.raises(NotFound):
        set_slot_availability(db, ADMIN, "missing", False)
