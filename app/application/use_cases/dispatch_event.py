from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from app.application.exceptions import BookingNotFoundError
from app.application.ports.booking_store import BookingStorePort
from app.application.use_cases.transition_effects import ServiceNote, TransitionEffectsUseCase
from app.application.utils.locks import KeyedLocks
from app.domain.entities.booking import Booking
from app.domain.entities.events import SYSTEM_ACTOR, Event, ServiceAction, ServiceEvent, actor_of
from app.domain.entities.snapshot import MachineState
from app.domain.entities.status import BookingStatusLabel
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine, TransitionResult
from app.domain.machine.rehydration import snapshot_for


@dataclass(frozen=True)
class DispatchResult:
    booking: Booking
    transition: TransitionResult

    @property
    def changed(self) -> bool:
        return self.transition.changed


def service_note(event: ServiceEvent, actor: str) -> ServiceNote:
    """History note for one service decision, e.g. "Staff Service Declined: no staff"."""
    note = f"{event.category.display_name} Service {event.action.past_tense}"
    reason = (event.reason or "").strip()
    if reason:
        note = f"{note}: {reason}"
    status = BookingStatusLabel.CHECKED_OUT if event.action is ServiceAction.CLOSEOUT else BookingStatusLabel.PRE_APPROVED
    return ServiceNote(status=status, note=note, changed_by=actor)


class DispatchBookingEventUseCase:
    """Load one booking, send it one event and run the resulting side effects.

    Work for the same booking is serialized on a per-calendarEventId lock.
    """

    def __init__(
        self,
        store: BookingStorePort,
        effects: TransitionEffectsUseCase,
        locks: KeyedLocks,
        policy_for: Callable[[str], TenantPolicy],
    ) -> None:
        self._store = store
        self._effects = effects
        self._locks = locks
        self._policy_for = policy_for
        self._logger = logging.getLogger(__name__)

    def machine(self, tenant: str) -> BookingMachine:
        return BookingMachine(self._policy_for(tenant))

    def execute(self, tenant: str, calendar_event_id: str, event: Event) -> DispatchResult:
        with self._locks.hold(tenant, calendar_event_id):
            booking = self._store.get_by_calendar_event_id(tenant, calendar_event_id)
            if booking is None:
                raise BookingNotFoundError(calendar_event_id, tenant)

            snapshot = snapshot_for(booking)
            result = self.machine(tenant).transition(snapshot, event)
            if not result.changed:
                self._logger.info(
                    "Event ignored for current state",
                    extra={
                        "calendar_event_id": calendar_event_id,
                        "tenant": tenant,
                        "event": event.name,
                        "from_state": snapshot.value.value,
                    },
                )
                return DispatchResult(booking=booking, transition=result)

            actor = actor_of(event, booking.email)
            self._logger.info(
                "Booking event applied",
                extra={
                    "calendar_event_id": calendar_event_id,
                    "tenant": tenant,
                    "event": event.name,
                    "from_state": snapshot.value.value,
                    "to_state": result.snapshot.value.value,
                    "actor": actor,
                },
            )
            updated = self._apply(booking, result, event, actor)
            return DispatchResult(booking=updated, transition=result)

    def _apply(self, booking: Booking, result: TransitionResult, event: Event, actor: str) -> Booking:
        if not isinstance(event, ServiceEvent):
            return self._effects.apply(booking, result, actor)

        notes: dict[MachineState, str] = {}
        attributions: dict[MachineState, str] = {}
        if result.entered(MachineState.DECLINED):
            # The overall decline is the system's consequence of one service decline.
            attributions[MachineState.DECLINED] = SYSTEM_ACTOR
            notes[MachineState.DECLINED] = (
                f"Booking declined because {event.category.display_name} service was declined"
            )
        return self._effects.apply(
            booking,
            result,
            actor,
            notes=notes,
            attributions=attributions,
            service_note=service_note(event, actor),
        )
