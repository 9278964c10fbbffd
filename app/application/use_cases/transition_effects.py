from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping

from app.application.exceptions import BookingPersistenceError
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.calendar import CalendarPort
from app.application.ports.email import BookingEmail, EmailPort
from app.application.utils.calendar_text import DEFAULT_TITLE_MAX_LENGTH, booking_event_title
from app.application.utils.clock import Clock, utc_now
from app.domain.entities.booking import Booking
from app.domain.entities.history import HistoryLogEntry
from app.domain.entities.services import dump_service_flags
from app.domain.entities.snapshot import MachineState, snapshot_to_dict
from app.domain.entities.status import BookingStatusLabel, status_from_snapshot
from app.domain.machine.booking_machine import TransitionResult


@dataclass(frozen=True)
class Milestone:
    status: BookingStatusLabel
    header: str
    at_field: str | None = None
    by_field: str | None = None
    patch_calendar: bool = True


MILESTONES: dict[MachineState, Milestone] = {
    MachineState.REQUESTED: Milestone(
        BookingStatusLabel.REQUESTED, "Your reservation request has been received", patch_calendar=False
    ),
    MachineState.PRE_APPROVED: Milestone(
        BookingStatusLabel.PRE_APPROVED, "Your reservation request has been pre-approved",
        "firstApprovedAt", "firstApprovedBy",
    ),
    MachineState.APPROVED: Milestone(
        BookingStatusLabel.APPROVED, "Your reservation request has been approved",
        "finalApprovedAt", "finalApprovedBy",
    ),
    MachineState.DECLINED: Milestone(
        BookingStatusLabel.DECLINED, "Your reservation request has been declined",
        "declinedAt", "declinedBy",
    ),
    MachineState.CANCELED: Milestone(
        BookingStatusLabel.CANCELED, "Your reservation has been canceled",
        "canceledAt", "canceledBy",
    ),
    MachineState.CHECKED_IN: Milestone(
        BookingStatusLabel.CHECKED_IN, "You have been checked in",
        "checkedInAt", "checkedInBy",
    ),
    MachineState.CHECKED_OUT: Milestone(
        BookingStatusLabel.CHECKED_OUT, "You have been checked out",
        "checkedOutAt", "checkedOutBy",
    ),
    MachineState.NO_SHOW: Milestone(
        BookingStatusLabel.NO_SHOW, "Your reservation has been marked as a no-show",
        "noShowedAt", "noShowedBy",
    ),
    MachineState.CLOSED: Milestone(
        BookingStatusLabel.CLOSED, "Your reservation has been closed",
        "closedAt", "closedBy",
    ),
}

NO_SHOW_NOTE = "Booking marked as no show"


@dataclass(frozen=True)
class ServiceNote:
    """History entry written for a single service approve/decline/closeout."""

    status: BookingStatusLabel
    note: str
    changed_by: str


class TransitionEffectsUseCase:
    """
    Runs the external actions of a transition the machine has already decided.

    Order per transition: (1) one write of the booking record (snapshot,
    status mirror, milestone fields), then per milestone reached: (2) calendar
    patch, (3) notification email, (4) history entry. Only (1) may fail the
    caller; calendar and email failures are logged and swallowed.
    """

    def __init__(
        self,
        store: BookingStorePort,
        calendar: CalendarPort,
        email: EmailPort,
        clock: Clock = utc_now,
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._email = email
        self._clock = clock
        self._title_max_length = title_max_length
        self._logger = logging.getLogger(__name__)

    def apply(
        self,
        booking: Booking,
        result: TransitionResult,
        actor: str,
        *,
        log_history: bool = True,
        notes: Mapping[MachineState, str] | None = None,
        attributions: Mapping[MachineState, str] | None = None,
        service_note: ServiceNote | None = None,
    ) -> Booking:
        if not result.changed:
            return booking

        now = self._clock()
        notes = dict(notes or {})
        attributions = dict(attributions or {})
        reached = self._milestones_reached(result)

        updates: dict[str, object] = {
            "xstateData": snapshot_to_dict(result.snapshot),
            "status": status_from_snapshot(result.snapshot).value,
            "servicesApproved": dump_service_flags(result.snapshot.context.services_approved),
        }
        for state in result.steps:
            milestone = MILESTONES.get(state)
            if milestone is None or milestone.at_field is None:
                continue
            updates[milestone.at_field] = now.isoformat()
            updates[milestone.by_field] = attributions.get(state, actor)
        if result.entered(MachineState.DECLINED):
            updates["declineReason"] = result.snapshot.context.decline_reason

        updated = self._write(booking, updates)

        pending_note = service_note if log_history else None
        for state in reached:
            milestone = MILESTONES[state]
            if milestone.patch_calendar:
                self._update_calendar(updated, milestone.status, state, now)
            self._notify(updated, milestone)
            if pending_note is not None:
                self._append_service_note(updated, pending_note, now)
                pending_note = None
            if log_history:
                note = notes.get(state) or self._default_note(state, result)
                self._append_history(updated, milestone.status.value, attributions.get(state, actor), note, now)
        if pending_note is not None:
            self._append_service_note(updated, pending_note, now)

        return updated

    def replay(self, booking: Booking, state: MachineState, *, log_history: bool = False, actor: str | None = None) -> None:
        """Re-run the calendar/email (and optionally history) effects of a state the
        booking already holds, without writing the record."""
        milestone = MILESTONES[state]
        now = self._clock()
        if milestone.patch_calendar:
            self._update_calendar(booking, milestone.status, state, now)
        self._notify(booking, milestone)
        if log_history:
            self._append_history(booking, milestone.status.value, actor or booking.email, None, now)

    def log(self, booking: Booking, status: str, changed_by: str, note: str | None = None) -> None:
        self._append_history(booking, status, changed_by, note, self._clock())

    # -- steps --------------------------------------------------------------

    def _milestones_reached(self, result: TransitionResult) -> list[MachineState]:
        reached = [s for s in result.steps if s in MILESTONES and s is not MachineState.CLOSED]
        # Closed gets its own notification only when nothing else in this
        # transition already announced how the booking ended.
        if result.entered(MachineState.CLOSED) and not reached:
            reached.append(MachineState.CLOSED)
        return reached

    def _write(self, booking: Booking, updates: Mapping[str, object]) -> Booking:
        try:
            return self._store.update_fields(booking.tenant, booking.booking_id, updates)
        except Exception as e:
            self._logger.exception(
                "Booking record update failed",
                extra={
                    "calendar_event_id": booking.calendar_event_id,
                    "tenant": booking.tenant,
                    "error": str(e),
                },
            )
            raise BookingPersistenceError(f"Could not update booking {booking.booking_id}") from e

    def _update_calendar(self, booking: Booking, status: BookingStatusLabel, state: MachineState, now: datetime) -> None:
        calendar_id = booking.primary_calendar_id
        if not calendar_id:
            self._logger.warning(
                "Calendar update skipped, booking has no calendar",
                extra={"calendar_event_id": booking.calendar_event_id, "tenant": booking.tenant},
            )
            return

        fields: dict[str, object] = {"title": booking_event_title(booking, status.value, self._title_max_length)}
        if state is MachineState.CHECKED_OUT:
            fields["end"] = now.isoformat()
        try:
            self._calendar.patch_event(calendar_id, booking.calendar_event_id, fields)
        except Exception as e:
            self._logger.error(
                "Calendar update failed",
                extra={
                    "calendar_event_id": booking.calendar_event_id,
                    "tenant": booking.tenant,
                    "status": status.value,
                    "error": str(e),
                },
            )

    def _notify(self, booking: Booking, milestone: Milestone) -> None:
        if not booking.email:
            return
        message = BookingEmail(
            calendar_event_id=booking.calendar_event_id,
            target_email=booking.email,
            header_message=milestone.header,
            status=milestone.status.value,
            tenant=booking.tenant,
        )
        try:
            self._email.send_booking_email(message)
        except Exception as e:
            self._logger.error(
                "Booking email failed",
                extra={
                    "calendar_event_id": booking.calendar_event_id,
                    "tenant": booking.tenant,
                    "status": milestone.status.value,
                    "error": str(e),
                },
            )

    def _append_service_note(self, booking: Booking, service_note: ServiceNote, now: datetime) -> None:
        self._append_history(booking, service_note.status.value, service_note.changed_by, service_note.note, now)

    def _append_history(self, booking: Booking, status: str, changed_by: str, note: str | None, now: datetime) -> None:
        entry = HistoryLogEntry(
            booking_id=booking.booking_id,
            calendar_event_id=booking.calendar_event_id,
            status=status,
            changed_by=changed_by,
            request_number=booking.request_number,
            timestamp=now,
            tenant=booking.tenant,
            note=note,
        )
        try:
            self._store.append_log(entry)
        except Exception as e:
            self._logger.error(
                "History log failed",
                extra={
                    "calendar_event_id": booking.calendar_event_id,
                    "tenant": booking.tenant,
                    "status": status,
                    "error": str(e),
                },
            )

    @staticmethod
    def _default_note(state: MachineState, result: TransitionResult) -> str | None:
        if state is MachineState.DECLINED:
            return result.snapshot.context.decline_reason
        if state is MachineState.NO_SHOW:
            return NO_SHOW_NOTE
        return None
