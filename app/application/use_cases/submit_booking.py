from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Mapping

from app.application.exceptions import BookingPersistenceError, BookingValidationError
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.calendar import CalendarPort
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.application.utils.calendar_text import DEFAULT_TITLE_MAX_LENGTH, booking_description, booking_event_title
from app.application.utils.clock import Clock, utc_now
from app.domain.entities.booking import Booking
from app.domain.entities.events import SYSTEM_ACTOR
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom, Snapshot
from app.domain.entities.status import BookingStatusLabel
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine, TransitionResult
from app.domain.machine.rehydration import context_from_booking


@dataclass(frozen=True)
class BookingSubmission:
    tenant: str
    email: str
    title: str
    start_date: datetime
    end_date: datetime
    selected_rooms: tuple[SelectedRoom, ...]
    description: str | None = None
    services_requested: Mapping[ServiceCategory, bool] = field(default_factory=dict)
    is_vip: bool = False
    is_walk_in: bool = False
    origin: str = "user"


def validate_booking_fields(
    title: str | None,
    start: datetime | None,
    end: datetime | None,
    rooms: tuple[SelectedRoom, ...],
) -> None:
    if not title or not title.strip():
        raise BookingValidationError("title is required")
    if start is None or end is None:
        raise BookingValidationError("startDate and endDate are required")
    if end <= start:
        raise BookingValidationError("endDate must be after startDate")
    if not rooms:
        raise BookingValidationError("At least one room must be selected")
    if not any(room.calendar_id for room in rooms):
        raise BookingValidationError("Selected rooms have no calendar")


def create_calendar_event(
    calendar: CalendarPort, booking: Booking, status: BookingStatusLabel, title_max_length: int
) -> str:
    """Create the booking's event on the first room calendar, inviting the other rooms."""
    calendar_ids = [room.calendar_id for room in booking.selected_rooms if room.calendar_id]
    return calendar.create_event(
        calendar_ids[0],
        booking_event_title(booking, status.value, title_max_length),
        booking_description(booking, status.value),
        booking.start_date,
        booking.end_date,
        calendar_ids[1:],
    )


def without_first_step(result: TransitionResult, first: Snapshot) -> TransitionResult:
    """The part of an initial evaluation that happens after entering `first`."""
    return TransitionResult(snapshot=result.snapshot, steps=result.steps[1:], previous=first)


class SubmitBookingUseCase:
    def __init__(
        self,
        store: BookingStorePort,
        calendar: CalendarPort,
        effects: TransitionEffectsUseCase,
        policy_for: Callable[[str], TenantPolicy],
        clock: Clock = utc_now,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._effects = effects
        self._policy_for = policy_for
        self._clock = clock
        self._title_max_length = title_max_length
        self._logger = logging.getLogger(__name__)

    def execute(self, submission: BookingSubmission) -> Booking:
        if not submission.email:
            raise BookingValidationError("email is required")
        validate_booking_fields(
            submission.title, submission.start_date, submission.end_date, submission.selected_rooms
        )

        draft = Booking(
            booking_id=uuid.uuid4().hex,
            tenant=submission.tenant,
            calendar_event_id="",
            request_number=self._store.next_request_number(submission.tenant),
            email=submission.email,
            title=submission.title.strip(),
            start_date=submission.start_date,
            end_date=submission.end_date,
            selected_rooms=submission.selected_rooms,
            description=submission.description,
            requested_at=self._clock(),
            origin=submission.origin,
            is_vip=submission.is_vip,
            is_walk_in=submission.is_walk_in,
            services_requested=dict(submission.services_requested),
            status=BookingStatusLabel.REQUESTED.value,
        )
        # No calendar event means no booking key; failures propagate.
        calendar_event_id = create_calendar_event(
            self._calendar, draft, BookingStatusLabel.REQUESTED, self._title_max_length
        )

        context = context_from_booking(draft, calendar_event_id=calendar_event_id)
        requested = Snapshot(value=MachineState.REQUESTED, context=context)
        booking = replace(draft, calendar_event_id=calendar_event_id, xstate_data=requested)
        try:
            self._store.save(booking)
        except Exception as e:
            self._logger.exception(
                "Booking save failed",
                extra={"calendar_event_id": calendar_event_id, "tenant": booking.tenant, "error": str(e)},
            )
            raise BookingPersistenceError(f"Could not save booking {booking.booking_id}") from e

        self._logger.info(
            "Booking submitted",
            extra={
                "calendar_event_id": calendar_event_id,
                "tenant": booking.tenant,
                "request_number": booking.request_number,
            },
        )
        self._effects.replay(booking, MachineState.REQUESTED, log_history=True, actor=booking.email)

        result = BookingMachine(self._policy_for(booking.tenant)).start(context)
        return self._effects.apply(booking, without_first_step(result, requested), SYSTEM_ACTOR)
