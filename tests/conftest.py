"""
Shared fixtures: in-memory store, mock collaborators and a booking factory.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from app.application.use_cases.dispatch_event import DispatchBookingEventUseCase
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.application.utils.locks import KeyedLocks
from app.domain.entities.booking import Booking
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom, Snapshot
from app.domain.entities.status import status_from_snapshot
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.rehydration import context_from_booking
from app.domain.machine.service_approval import enter_service_closeout, enter_services_request
from app.infrastructure.calendar.mock_calendar import MockCalendar
from app.infrastructure.email.mock_email import MockEmailSender
from app.infrastructure.store.memory_store import MemoryBookingStore


NOW = datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc)
REQUESTER = "requester@nyu.edu"
ROOM = SelectedRoom(room_id=202, calendar_id="cal-202", should_auto_approve=False)


def default_policy(tenant: str) -> TenantPolicy:
    return TenantPolicy(tenant=tenant)


@pytest.fixture
def store() -> MemoryBookingStore:
    return MemoryBookingStore()


@pytest.fixture
def calendar() -> MockCalendar:
    return MockCalendar()


@pytest.fixture
def email() -> MockEmailSender:
    return MockEmailSender()


@pytest.fixture
def locks() -> KeyedLocks:
    return KeyedLocks()


@pytest.fixture
def effects(store, calendar, email) -> TransitionEffectsUseCase:
    return TransitionEffectsUseCase(store=store, calendar=calendar, email=email, clock=lambda: NOW)


@pytest.fixture
def dispatcher(store, effects, locks) -> DispatchBookingEventUseCase:
    return DispatchBookingEventUseCase(store=store, effects=effects, locks=locks, policy_for=default_policy)


@pytest.fixture
def make_booking(store, calendar):
    """Save a booking already resting in `state` and return it."""

    def _make(
        state: MachineState = MachineState.REQUESTED,
        *,
        tenant: str = "mc",
        services_requested: dict[ServiceCategory, bool] | None = None,
        services_approved: dict[ServiceCategory, bool] | None = None,
        rooms: tuple[SelectedRoom, ...] = (ROOM,),
        start: datetime | None = None,
        end: datetime | None = None,
        with_snapshot: bool = True,
        **fields,
    ) -> Booking:
        start = start or NOW - timedelta(hours=2)
        end = end or start + timedelta(hours=1)
        event_id = calendar.create_event(rooms[0].calendar_id, "[REQUESTED] 202 Seminar", "", start, end)
        booking = Booking(
            booking_id=f"booking-{event_id}",
            tenant=tenant,
            calendar_event_id=event_id,
            request_number=store.next_request_number(tenant),
            email=REQUESTER,
            title="Seminar",
            start_date=start,
            end_date=end,
            selected_rooms=rooms,
            services_requested=dict(services_requested or {}),
            services_approved=dict(services_approved or {}),
            **fields,
        )
        if with_snapshot:
            context = context_from_booking(booking)
            if state is MachineState.SERVICES_REQUEST:
                snapshot = Snapshot(value=state, context=context, services=enter_services_request(context))
            elif state is MachineState.SERVICE_CLOSEOUT:
                snapshot = Snapshot(value=state, context=context, closeouts=enter_service_closeout(context))
            else:
                snapshot = Snapshot(value=state, context=context)
            booking = replace(booking, xstate_data=snapshot, status=status_from_snapshot(snapshot).value)
        store.save(booking)
        return booking

    return _make
