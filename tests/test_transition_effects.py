"""
Tests for the transition side-effect executor: ordering and failure isolation.
"""

from __future__ import annotations

import pytest

from app.application.exceptions import BookingPersistenceError, CalendarUpstreamError, EmailUpstreamError
from app.application.use_cases.transition_effects import ServiceNote
from app.domain.entities.events import BookingEvent, EventType, parse_event
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState
from app.domain.entities.status import BookingStatusLabel
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine
from app.infrastructure.calendar.mock_calendar import MockCalendar
from app.infrastructure.email.mock_email import MockEmailSender
from app.infrastructure.store.memory_store import MemoryBookingStore

from conftest import NOW, REQUESTER


ADMIN = "admin@nyu.edu"


class RecordingStore(MemoryBookingStore):
    def __init__(self, calls: list[str]) -> None:
        super().__init__()
        self.calls = calls
        self.fail_writes = False

    def update_fields(self, tenant, booking_id, updates):
        if self.fail_writes:
            raise OSError("disk full")
        self.calls.append("record")
        return super().update_fields(tenant, booking_id, updates)

    def append_log(self, entry):
        self.calls.append(f"history:{entry.status}")
        super().append_log(entry)


class RecordingCalendar(MockCalendar):
    def __init__(self, calls: list[str]) -> None:
        super().__init__()
        self.calls = calls
        self.fail = False

    def patch_event(self, calendar_id, event_id, fields):
        self.calls.append("calendar")
        if self.fail:
            raise CalendarUpstreamError("calendar down")
        super().patch_event(calendar_id, event_id, fields)


class RecordingEmail(MockEmailSender):
    def __init__(self, calls: list[str]) -> None:
        super().__init__()
        self.calls = calls
        self.fail = False

    def send_booking_email(self, email):
        self.calls.append("email")
        if self.fail:
            raise EmailUpstreamError("smtp down")
        super().send_booking_email(email)


@pytest.fixture
def calls() -> list[str]:
    return []


@pytest.fixture
def store(calls) -> RecordingStore:
    return RecordingStore(calls)


@pytest.fixture
def calendar(calls) -> RecordingCalendar:
    return RecordingCalendar(calls)


@pytest.fixture
def email(calls) -> RecordingEmail:
    return RecordingEmail(calls)


MACHINE = BookingMachine(TenantPolicy(tenant="mc"))


def send(booking, name: str, email: str = ADMIN, reason: str | None = None):
    return MACHINE.transition(booking.xstate_data, parse_event(name, email=email, reason=reason))


def test_final_approval_runs_record_calendar_email_history_in_order(make_booking, effects, store, calendar, email, calls):
    booking = make_booking(MachineState.PRE_APPROVED)

    updated = effects.apply(booking, send(booking, "approve"), ADMIN)

    assert calls == ["record", "calendar", "email", "history:APPROVED"]
    assert updated.status == "APPROVED"
    assert updated.final_approved_at == NOW
    assert updated.final_approved_by == ADMIN
    assert updated.xstate_data.value is MachineState.APPROVED
    assert calendar.get_event(booking.calendar_event_id).title == "[APPROVED] 202 Seminar"
    assert email.sent[0].target_email == REQUESTER
    assert email.sent[0].status == "APPROVED"
    assert email.sent[0].calendar_event_id == booking.calendar_event_id

    [entry] = store.list_logs("mc", booking.booking_id)
    assert entry.changed_by == ADMIN
    assert entry.request_number == booking.request_number


def test_calendar_failure_does_not_undo_or_stop_the_transition(make_booking, effects, store, calendar, calls):
    booking = make_booking(MachineState.APPROVED)
    calendar.fail = True

    updated = effects.apply(booking, send(booking, "checkIn"), ADMIN)

    assert calls == ["record", "calendar", "email", "history:CHECKED-IN"]
    assert updated.status == "CHECKED-IN"
    assert store.get("mc", booking.booking_id).checked_in_by == ADMIN


def test_email_failure_still_logs_history(make_booking, effects, store, email, calls):
    booking = make_booking(MachineState.APPROVED)
    email.fail = True

    effects.apply(booking, send(booking, "checkIn"), ADMIN)

    assert calls[-1] == "history:CHECKED-IN"
    assert len(store.list_logs("mc", booking.booking_id)) == 1


def test_record_failure_is_fatal_and_skips_other_effects(make_booking, effects, store, calls):
    booking = make_booking(MachineState.APPROVED)
    store.fail_writes = True

    with pytest.raises(BookingPersistenceError):
        effects.apply(booking, send(booking, "checkIn"), ADMIN)

    assert calls == []
    assert store.get("mc", booking.booking_id).xstate_data.value is MachineState.APPROVED


def test_ignored_event_runs_no_effects(make_booking, effects, calls):
    booking = make_booking(MachineState.APPROVED)
    result = send(booking, "checkOut")

    assert effects.apply(booking, result, ADMIN) is booking
    assert calls == []


def test_cancel_logs_once_and_records_closed_fields(make_booking, effects, store, calls):
    booking = make_booking(MachineState.APPROVED)

    updated = effects.apply(booking, send(booking, "cancel", email=REQUESTER), REQUESTER)

    assert calls == ["record", "calendar", "email", "history:CANCELED"]
    assert updated.status == "CANCELED"
    assert updated.canceled_by == REQUESTER
    assert updated.closed_at == NOW
    assert updated.closed_by == REQUESTER


def test_cancel_with_approved_services_rests_in_closeout(make_booking, effects, store):
    services = {ServiceCategory.STAFF: True}
    booking = make_booking(MachineState.APPROVED, services_requested=services, services_approved=services)

    updated = effects.apply(booking, send(booking, "cancel"), ADMIN)

    assert updated.xstate_data.value is MachineState.SERVICE_CLOSEOUT
    assert updated.status == "CANCELED"
    assert updated.closed_at is None
    assert [e.status for e in store.list_logs("mc", booking.booking_id)] == ["CANCELED"]


def test_final_closeout_announces_closed(make_booking, effects, store, calls):
    services = {ServiceCategory.STAFF: True}
    booking = make_booking(
        MachineState.SERVICE_CLOSEOUT, services_requested=services, services_approved=services
    )

    updated = effects.apply(booking, send(booking, "closeoutStaff"), ADMIN)

    assert updated.xstate_data.value is MachineState.CLOSED
    assert updated.closed_by == ADMIN
    assert calls == ["record", "calendar", "email", "history:CLOSED"]


def test_checkout_moves_calendar_end_to_now(make_booking, effects, calendar):
    booking = make_booking(MachineState.CHECKED_IN)

    updated = effects.apply(booking, send(booking, "checkOut"), ADMIN)

    assert updated.checked_out_at == NOW
    assert updated.status == "CHECKED-OUT"
    [(_, event_id, fields)] = calendar.patches
    assert event_id == booking.calendar_event_id
    assert fields["end"] == NOW.isoformat()
    assert calendar.get_event(event_id).end == NOW


def test_decline_records_reason_and_notes_history(make_booking, effects, store):
    booking = make_booking(MachineState.REQUESTED)

    updated = effects.apply(booking, send(booking, "decline", reason="Room closed"), ADMIN)

    assert updated.decline_reason == "Room closed"
    assert updated.declined_by == ADMIN
    [entry] = store.list_logs("mc", booking.booking_id)
    assert entry.status == "DECLINED"
    assert entry.note == "Room closed"


def test_no_show_history_note(make_booking, effects, store):
    booking = make_booking(MachineState.APPROVED)

    updated = effects.apply(booking, send(booking, "noShow"), ADMIN)

    assert updated.status == "NO-SHOW"
    assert updated.no_showed_by == ADMIN
    [entry] = store.list_logs("mc", booking.booking_id)
    assert entry.note == "Booking marked as no show"


def test_history_can_be_suppressed(make_booking, effects, store, calls):
    booking = make_booking(MachineState.PRE_APPROVED)

    effects.apply(booking, send(booking, "approve"), ADMIN, log_history=False)

    assert calls == ["record", "calendar", "email"]
    assert store.list_logs("mc", booking.booking_id) == []


def test_system_attribution_for_automated_events(make_booking, effects):
    booking = make_booking(MachineState.APPROVED)
    result = MACHINE.transition(booking.xstate_data, BookingEvent(type=EventType.AUTO_CLOSE_SCRIPT))

    updated = effects.apply(booking, result, "System")

    assert updated.closed_by == "System"
    assert updated.status == "CLOSED"


def test_service_note_is_logged_after_calendar_and_email(make_booking, effects, calls):
    booking = make_booking(MachineState.SERVICES_REQUEST, services_requested={ServiceCategory.STAFF: True})
    note = ServiceNote(status=BookingStatusLabel.PRE_APPROVED, note="Staff Service Approved", changed_by=ADMIN)

    effects.apply(booking, send(booking, "approveStaff"), ADMIN, service_note=note)

    assert calls == ["record", "calendar", "email", "history:PRE-APPROVED", "history:APPROVED"]


def test_service_note_without_milestone_is_still_logged(make_booking, effects, store, calls):
    booking = make_booking(
        MachineState.SERVICES_REQUEST,
        services_requested={ServiceCategory.STAFF: True, ServiceCategory.SETUP: True},
    )
    note = ServiceNote(status=BookingStatusLabel.PRE_APPROVED, note="Staff Service Approved", changed_by=ADMIN)

    effects.apply(booking, send(booking, "approveStaff"), ADMIN, service_note=note)

    assert calls == ["record", "history:PRE-APPROVED"]
