from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable, Mapping

from app.application.exceptions import BookingNotFoundError, BookingPersistenceError, BookingValidationError
from app.application.ports.booking_store import DELETE_FIELD, BookingStorePort
from app.application.ports.calendar import CalendarPort
from app.application.use_cases.submit_booking import create_calendar_event, validate_booking_fields, without_first_step
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.application.utils.calendar_text import DEFAULT_TITLE_MAX_LENGTH
from app.application.utils.clock import Clock, utc_now
from app.application.utils.locks import KeyedLocks
from app.domain.entities.booking import APPROVAL_FIELDS, Booking, booking_to_document
from app.domain.entities.events import SYSTEM_ACTOR
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom, Snapshot, dump_datetime, snapshot_to_dict
from app.domain.entities.status import BookingStatusLabel
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine
from app.domain.machine.rehydration import context_from_booking, snapshot_for


MODIFIED_NOTE = "Booking modified"

# Document fields an edit may rewrite.
_EDITABLE_KEYS = (
    "title",
    "description",
    "startDate",
    "endDate",
    "selectedRooms",
    "roomId",
    "servicesRequested",
    "servicesApproved",
)


@dataclass(frozen=True)
class BookingModification:
    tenant: str
    calendar_event_id: str
    modified_by: str
    title: str | None = None
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    selected_rooms: tuple[SelectedRoom, ...] | None = None
    services_requested: Mapping[ServiceCategory, bool] | None = None


def was_approved(booking: Booking, snapshot: Snapshot) -> bool:
    if snapshot.matches(MachineState.APPROVED):
        return True
    if booking.final_approved_at is not None:
        return True
    return snapshot.matches(MachineState.SERVICES_REQUEST) and booking.first_approved_at is not None


class ModifyBookingUseCase:
    """
    Applies an edit to a submitted booking.

    A previously approved booking stays Approved: its approval fields and
    service approvals carry over and the final-approval calendar/email effects
    run once for the new calendar event. Any other booking restarts at
    Requested with its approval fields deleted from the record. Either way the
    booking moves to a new calendar event.
    """

    def __init__(
        self,
        store: BookingStorePort,
        calendar: CalendarPort,
        effects: TransitionEffectsUseCase,
        locks: KeyedLocks,
        policy_for: Callable[[str], TenantPolicy],
        clock: Clock = utc_now,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._effects = effects
        self._locks = locks
        self._policy_for = policy_for
        self._clock = clock
        self._title_max_length = title_max_length
        self._logger = logging.getLogger(__name__)

    def execute(self, modification: BookingModification) -> Booking:
        if not modification.modified_by:
            raise BookingValidationError("modifiedBy is required")

        tenant = modification.tenant
        with self._locks.hold(tenant, modification.calendar_event_id):
            booking = self._store.get_by_calendar_event_id(tenant, modification.calendar_event_id)
            if booking is None:
                raise BookingNotFoundError(modification.calendar_event_id, tenant)

            approved = was_approved(booking, snapshot_for(booking))
            edited = self._edited(booking, modification, approved)
            validate_booking_fields(edited.title, edited.start_date, edited.end_date, edited.selected_rooms)

            status = BookingStatusLabel.APPROVED if approved else BookingStatusLabel.REQUESTED
            new_event_id = create_calendar_event(self._calendar, edited, status, self._title_max_length)

            context = context_from_booking(edited, calendar_event_id=new_event_id)
            if approved:
                snapshot = Snapshot(value=MachineState.APPROVED, context=context)
            else:
                snapshot = Snapshot(value=MachineState.REQUESTED, context=context)

            now = self._clock()
            updates: dict[str, Any] = {
                key: value for key, value in booking_to_document(edited).items() if key in _EDITABLE_KEYS
            }
            updates.update(
                {
                    "calendarEventId": new_event_id,
                    "xstateData": snapshot_to_dict(snapshot),
                    "status": status.value,
                    "modifiedAt": dump_datetime(now),
                    "modifiedBy": modification.modified_by,
                }
            )
            if not edited.description:
                updates["description"] = DELETE_FIELD
            if not approved:
                updates.update({key: DELETE_FIELD for key in APPROVAL_FIELDS})

            try:
                updated = self._write(booking, updates)
            except BookingPersistenceError:
                self._delete_event(edited, new_event_id)
                raise
            self._delete_event(booking, booking.calendar_event_id)
            self._logger.info(
                "Booking modified",
                extra={
                    "calendar_event_id": new_event_id,
                    "tenant": tenant,
                    "actor": modification.modified_by,
                    "status": status.value,
                },
            )
            self._effects.log(updated, status.value, modification.modified_by, MODIFIED_NOTE)

            if approved:
                self._effects.replay(updated, MachineState.APPROVED, log_history=False)
                return updated

            self._effects.replay(updated, MachineState.REQUESTED, log_history=False)
            result = BookingMachine(self._policy_for(tenant)).start(context)
            return self._effects.apply(updated, without_first_step(result, snapshot), SYSTEM_ACTOR)

    def _edited(self, booking: Booking, modification: BookingModification, approved: bool) -> Booking:
        changes: dict[str, Any] = {}
        if modification.title is not None:
            changes["title"] = modification.title.strip()
        if modification.description is not None:
            changes["description"] = modification.description or None
        if modification.start_date is not None:
            changes["start_date"] = modification.start_date
        if modification.end_date is not None:
            changes["end_date"] = modification.end_date
        if modification.selected_rooms is not None:
            changes["selected_rooms"] = modification.selected_rooms
        if modification.services_requested is not None:
            changes["services_requested"] = dict(modification.services_requested)
        if not approved:
            changes["services_approved"] = {}
        return replace(booking, **changes)

    def _delete_event(self, booking: Booking, event_id: str) -> None:
        calendar_id = booking.primary_calendar_id
        if not calendar_id:
            return
        try:
            self._calendar.delete_event(calendar_id, event_id)
        except Exception as e:
            self._logger.error(
                "Calendar event delete failed",
                extra={"calendar_event_id": event_id, "tenant": booking.tenant, "error": str(e)},
            )

    def _write(self, booking: Booking, updates: Mapping[str, Any]) -> Booking:
        try:
            return self._store.update_fields(booking.tenant, booking.booking_id, updates)
        except Exception as e:
            self._logger.exception(
                "Booking modification write failed",
                extra={"calendar_event_id": booking.calendar_event_id, "tenant": booking.tenant, "error": str(e)},
            )
            raise BookingPersistenceError(f"Could not update booking {booking.booking_id}") from e
