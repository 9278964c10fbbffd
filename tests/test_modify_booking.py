"""
Tests for reconciling edits to an existing booking.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.application.exceptions import BookingNotFoundError, BookingPersistenceError, BookingValidationError
from app.application.use_cases.modify_booking import BookingModification, ModifyBookingUseCase
from app.domain.entities.booking import APPROVAL_FIELDS
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom

from conftest import NOW, REQUESTER, default_policy


EDITOR = "pa@nyu.edu"
APPROVER = "admin@nyu.edu"
APPROVED_AT = NOW - timedelta(days=2)


@pytest.fixture
def modify(store, calendar, effects, locks) -> ModifyBookingUseCase:
    return ModifyBookingUseCase(
        store=store,
        calendar=calendar,
        effects=effects,
        locks=locks,
        policy_for=default_policy,
        clock=lambda: NOW,
    )


def edit(booking, **changes) -> BookingModification:
    return BookingModification(
        tenant=booking.tenant,
        calendar_event_id=booking.calendar_event_id,
        modified_by=changes.pop("modified_by", EDITOR),
        **changes,
    )


def test_approved_booking_stays_approved(modify, make_booking, store, calendar, email):
    services = {ServiceCategory.STAFF: True}
    booking = make_booking(
        MachineState.APPROVED,
        services_requested=services,
        services_approved=services,
        first_approved_at=APPROVED_AT,
        first_approved_by=APPROVER,
        final_approved_at=APPROVED_AT,
        final_approved_by=APPROVER,
    )
    new_start = booking.start_date + timedelta(days=1)

    updated = modify.execute(edit(booking, title="Thesis defense", start_date=new_start, end_date=new_start + timedelta(hours=2)))

    assert updated.calendar_event_id != booking.calendar_event_id
    assert updated.xstate_data.value is MachineState.APPROVED
    assert updated.status == "APPROVED"
    assert updated.final_approved_at == APPROVED_AT
    assert updated.final_approved_by == APPROVER
    assert updated.services_approved == {ServiceCategory.STAFF: True}
    assert updated.title == "Thesis defense"

    [(_, patched_id, fields)] = calendar.patches
    assert patched_id == updated.calendar_event_id
    assert fields["title"] == "[APPROVED] 202 Thesis defense"
    [message] = email.sent
    assert message.calendar_event_id == updated.calendar_event_id
    assert message.status == "APPROVED"


def test_booking_moves_to_a_new_calendar_event(modify, make_booking, store, calendar):
    booking = make_booking(MachineState.APPROVED, final_approved_at=APPROVED_AT, final_approved_by=APPROVER)

    updated = modify.execute(edit(booking, title="Renamed"))

    assert calendar.deleted == [booking.calendar_event_id]
    assert calendar.get_event(booking.calendar_event_id) is None
    assert calendar.get_event(updated.calendar_event_id).title == "[APPROVED] 202 Renamed"
    assert store.get_by_calendar_event_id("mc", booking.calendar_event_id) is None
    assert store.get_by_calendar_event_id("mc", updated.calendar_event_id).booking_id == booking.booking_id
    assert updated.xstate_data.context.calendar_event_id == updated.calendar_event_id


def test_unapproved_booking_restarts_with_approval_fields_deleted(modify, make_booking, store, email):
    booking = make_booking(
        MachineState.PRE_APPROVED,
        services_requested={ServiceCategory.SETUP: True},
        services_approved={ServiceCategory.SETUP: True},
        first_approved_at=APPROVED_AT,
        first_approved_by=APPROVER,
    )

    updated = modify.execute(edit(booking, title="Moved"))

    assert updated.xstate_data.value is MachineState.REQUESTED
    assert updated.status == "REQUESTED"
    assert updated.first_approved_at is None
    assert updated.services_approved == {}

    doc = store.raw("mc", booking.booking_id)
    for key in APPROVAL_FIELDS:
        assert key not in doc
    assert doc["servicesApproved"] == {}
    assert [m.status for m in email.sent] == ["REQUESTED"]


def test_history_is_attributed_to_the_editor(modify, make_booking, store):
    booking = make_booking(MachineState.REQUESTED)

    updated = modify.execute(edit(booking, title="Updated"))

    [entry] = store.list_logs("mc", booking.booking_id)
    assert entry.changed_by == EDITOR != REQUESTER
    assert entry.note == "Booking modified"
    assert entry.status == "REQUESTED"
    assert entry.calendar_event_id == updated.calendar_event_id
    assert updated.modified_by == EDITOR
    assert updated.modified_at == NOW


def test_approved_modification_does_not_log_a_second_approval(modify, make_booking, store):
    booking = make_booking(MachineState.APPROVED, final_approved_at=APPROVED_AT, final_approved_by=APPROVER)

    modify.execute(edit(booking, title="Renamed"))

    assert [(e.status, e.note) for e in store.list_logs("mc", booking.booking_id)] == [("APPROVED", "Booking modified")]


def test_reevaluation_can_auto_approve(modify, make_booking, store):
    auto_room = SelectedRoom(room_id=220, calendar_id="cal-220", should_auto_approve=True)
    booking = make_booking(MachineState.REQUESTED)

    updated = modify.execute(edit(booking, selected_rooms=(auto_room,)))

    assert updated.xstate_data.value is MachineState.APPROVED
    assert updated.final_approved_by == "System"
    assert updated.room_ids == "220"
    assert [(e.status, e.changed_by) for e in store.list_logs("mc", booking.booking_id)] == [
        ("REQUESTED", EDITOR),
        ("APPROVED", "System"),
    ]


def test_unknown_booking_raises(modify):
    with pytest.raises(BookingNotFoundError):
        modify.execute(BookingModification(tenant="mc", calendar_event_id="nope", modified_by=EDITOR))


def test_invalid_edit_is_rejected_before_touching_the_calendar(modify, make_booking, calendar):
    booking = make_booking(MachineState.REQUESTED)

    with pytest.raises(BookingValidationError, match="endDate must be after startDate"):
        modify.execute(edit(booking, end_date=booking.start_date - timedelta(minutes=5)))

    assert calendar.deleted == []


def test_modified_by_is_required(modify, make_booking):
    booking = make_booking(MachineState.REQUESTED)

    with pytest.raises(BookingValidationError):
        modify.execute(edit(booking, modified_by="", title="x"))


def test_failed_write_keeps_the_old_calendar_event(modify, make_booking, store, calendar, monkeypatch):
    booking = make_booking(MachineState.REQUESTED)

    def broken_update(*args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(store, "update_fields", broken_update)

    with pytest.raises(BookingPersistenceError):
        modify.execute(edit(booking, title="Renamed"))

    stored = store.get("mc", booking.booking_id)
    assert stored.calendar_event_id == booking.calendar_event_id
    assert calendar.get_event(booking.calendar_event_id) is not None
    assert booking.calendar_event_id not in calendar.deleted
    # The event created for the edit is removed again.
    assert len(calendar.deleted) == 1
    assert calendar.get_event(calendar.deleted[0]) is None
