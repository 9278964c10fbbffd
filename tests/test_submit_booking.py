"""
Tests for booking submission and its initial evaluation.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.application.exceptions import BookingPersistenceError, BookingValidationError, CalendarUpstreamError
from app.application.ports.booking_store import BookingQuery
from app.application.use_cases.submit_booking import BookingSubmission, SubmitBookingUseCase
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom
from app.domain.entities.tenant_policy import TenantPolicy
from app.infrastructure.calendar.mock_calendar import MockCalendar
from app.infrastructure.store.memory_store import MemoryBookingStore

from conftest import NOW, REQUESTER, ROOM, default_policy


START = NOW + timedelta(days=3)
AUTO_ROOM = SelectedRoom(room_id=220, calendar_id="cal-220", should_auto_approve=True)


def submission(**overrides) -> BookingSubmission:
    fields = dict(
        tenant="mc",
        email=REQUESTER,
        title="Seminar",
        start_date=START,
        end_date=START + timedelta(hours=2),
        selected_rooms=(ROOM,),
    )
    fields.update(overrides)
    return BookingSubmission(**fields)


@pytest.fixture
def submit(store, calendar, effects):
    def _submit(policy_for=default_policy) -> SubmitBookingUseCase:
        return SubmitBookingUseCase(
            store=store, calendar=calendar, effects=effects, policy_for=policy_for, clock=lambda: NOW
        )

    return _submit


def test_submission_rests_in_requested(submit, store, calendar, email):
    booking = submit().execute(submission(description="Weekly"))

    assert booking.xstate_data.value is MachineState.REQUESTED
    assert booking.status == "REQUESTED"
    assert booking.request_number == 1
    assert booking.requested_at == NOW
    assert store.get_by_calendar_event_id("mc", booking.calendar_event_id).booking_id == booking.booking_id

    event = calendar.get_event(booking.calendar_event_id)
    assert event.title == "[REQUESTED] 202 Seminar"
    assert event.calendar_id == "cal-202"
    assert "Weekly" in event.description

    assert [m.status for m in email.sent] == ["REQUESTED"]
    [entry] = store.list_logs("mc", booking.booking_id)
    assert (entry.status, entry.changed_by) == ("REQUESTED", REQUESTER)


def test_auto_approve_room_approves_on_submission(submit, store, calendar):
    booking = submit().execute(submission(selected_rooms=(AUTO_ROOM,)))

    assert booking.xstate_data.value is MachineState.APPROVED
    assert booking.final_approved_by == "System"
    assert calendar.get_event(booking.calendar_event_id).title == "[APPROVED] 220 Seminar"
    assert [(e.status, e.changed_by) for e in store.list_logs("mc", booking.booking_id)] == [
        ("REQUESTED", REQUESTER),
        ("APPROVED", "System"),
    ]


def test_requested_services_block_auto_approval(submit):
    booking = submit().execute(
        submission(selected_rooms=(AUTO_ROOM,), services_requested={ServiceCategory.CATERING: True})
    )

    assert booking.xstate_data.value is MachineState.REQUESTED
    assert booking.services_requested == {ServiceCategory.CATERING: True}


def test_vip_with_services_goes_straight_to_services_request(submit):
    policy = lambda tenant: TenantPolicy(tenant=tenant, vip_services_bypass=True)

    booking = submit(policy).execute(
        submission(is_vip=True, services_requested={ServiceCategory.SECURITY: True})
    )

    assert booking.xstate_data.state_value == {"Services Request": {"security": "Requested"}}
    assert booking.status == "PRE-APPROVED"


def test_manual_approval_tenant_never_auto_approves(submit):
    policy = lambda tenant: TenantPolicy(tenant=tenant, require_manual_approval=True)

    booking = submit(policy).execute(submission(selected_rooms=(AUTO_ROOM,)))

    assert booking.xstate_data.value is MachineState.REQUESTED


def test_multi_room_booking_invites_other_room_calendars(submit, calendar):
    booking = submit().execute(submission(selected_rooms=(ROOM, AUTO_ROOM)))

    event = calendar.get_event(booking.calendar_event_id)
    assert event.calendar_id == "cal-202"
    assert event.attendee_calendar_ids == ["cal-220"]
    assert event.title == "[REQUESTED] 202, 220 Seminar"


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"title": "  "}, "title is required"),
        ({"email": ""}, "email is required"),
        ({"end_date": START}, "endDate must be after startDate"),
        ({"selected_rooms": ()}, "At least one room"),
        ({"selected_rooms": (SelectedRoom(room_id=1, calendar_id=""),)}, "no calendar"),
    ],
)
def test_invalid_submissions_are_rejected(submit, calendar, overrides, message):
    with pytest.raises(BookingValidationError, match=message):
        submit().execute(submission(**overrides))


def test_calendar_failure_aborts_submission(store, effects):
    class DownCalendar(MockCalendar):
        def create_event(self, *args, **kwargs):
            raise CalendarUpstreamError("calendar down")

    use_case = SubmitBookingUseCase(store=store, calendar=DownCalendar(), effects=effects, policy_for=default_policy)

    with pytest.raises(CalendarUpstreamError):
        use_case.execute(submission())

    assert store.query("mc", BookingQuery()) == []


def test_store_failure_is_reported_as_persistence_error(calendar, email):
    class BrokenStore(MemoryBookingStore):
        def save(self, booking):
            raise OSError("read-only")

    store = BrokenStore()
    effects = TransitionEffectsUseCase(store=store, calendar=calendar, email=email)
    use_case = SubmitBookingUseCase(store=store, calendar=calendar, effects=effects, policy_for=default_policy)

    with pytest.raises(BookingPersistenceError):
        use_case.execute(submission())

    assert email.sent == []
