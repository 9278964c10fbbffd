"""
Booking lifecycle state machine.

The machine is a pure function of (snapshot, event): it never performs I/O
and never raises for an event the current state does not accept. Such events
produce a TransitionResult with no steps and the original snapshot.

States that resolve immediately on entry (Canceled, No Show, Checked Out, and
Requested / Services Request / Service Closeout when their guards already
hold) are walked through within the same transition; every state entered is
recorded in `TransitionResult.steps` so the side-effect executor can act on
intermediate milestones.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Callable

from app.domain.entities.events import (
    EVENT_NAMES,
    BookingEvent,
    Event,
    EventType,
    ServiceAction,
    ServiceEvent,
    parse_event,
)
from app.domain.entities.snapshot import BookingContext, ClosedVia, MachineState, Snapshot
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.service_approval import (
    SERVICE_DECLINE_REASON,
    RendezvousOutcome,
    all_closed_out,
    all_requested_approved,
    close_out_service,
    decide_service,
    enter_service_closeout,
    enter_services_request,
    evaluate_rendezvous,
    has_approved_services,
    has_requested_services,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransitionResult:
    snapshot: Snapshot
    steps: tuple[MachineState, ...] = ()
    previous: Snapshot | None = None
    event: Event | None = None

    @property
    def changed(self) -> bool:
        return bool(self.steps)

    def entered(self, state: MachineState) -> bool:
        return state in self.steps


class _Path:
    """Accumulates the states entered while resolving one transition."""

    def __init__(self) -> None:
        self.steps: list[MachineState] = []

    def visit(self, state: MachineState) -> None:
        self.steps.append(state)


class BookingMachine:
    machine_id = "Booking Request"

    def __init__(self, policy: TenantPolicy) -> None:
        self._policy = policy
        self._handlers: dict[MachineState, Callable[[Snapshot, Event, _Path], Snapshot | None]] = {
            MachineState.REQUESTED: self._on_requested,
            MachineState.PRE_APPROVED: self._on_pre_approved,
            MachineState.SERVICES_REQUEST: self._on_services_request,
            MachineState.APPROVED: self._on_approved,
            MachineState.CHECKED_IN: self._on_checked_in,
            MachineState.SERVICE_CLOSEOUT: self._on_service_closeout,
        }

    @property
    def policy(self) -> TenantPolicy:
        return self._policy

    # -- public API -------------------------------------------------------

    def start(self, context: BookingContext) -> TransitionResult:
        """Enter Requested and run the initial evaluation (auto-approval, VIP routing)."""
        path = _Path()
        snapshot = self._enter(MachineState.REQUESTED, context, path)
        return TransitionResult(snapshot=snapshot, steps=tuple(path.steps))

    def transition(self, snapshot: Snapshot, event: Event) -> TransitionResult:
        handler = self._handlers.get(snapshot.value)
        path = _Path()
        new_snapshot = handler(snapshot, event, path) if handler else None
        if new_snapshot is None:
            return TransitionResult(snapshot=snapshot, previous=snapshot, event=event)
        logger.debug(
            "Booking transition",
            extra={
                "calendar_event_id": snapshot.context.calendar_event_id,
                "event": event.name,
                "from_state": snapshot.value.value,
                "to_state": new_snapshot.value.value,
            },
        )
        return TransitionResult(snapshot=new_snapshot, steps=tuple(path.steps), previous=snapshot, event=event)

    def can(self, snapshot: Snapshot, event: Event) -> bool:
        return self.transition(snapshot, event).changed

    def available_events(self, snapshot: Snapshot) -> list[str]:
        return [name for name in EVENT_NAMES if self.can(snapshot, parse_event(name))]

    # -- guards -----------------------------------------------------------

    def should_auto_approve(self, context: BookingContext) -> bool:
        if context.restored_from_status:
            return False
        if self._policy.require_manual_approval:
            return False
        if has_requested_services(context):
            return False
        if context.is_vip or context.is_walk_in:
            return True
        rooms = context.selected_rooms
        return bool(rooms) and all(room.should_auto_approve for room in rooms)

    def vip_bypasses_pre_approval(self, context: BookingContext) -> bool:
        return self._policy.vip_services_bypass and context.is_vip and has_requested_services(context)

    # -- state entry (eventless transitions) ------------------------------

    def _enter(self, state: MachineState, context: BookingContext, path: _Path) -> Snapshot:
        path.visit(state)

        if state is MachineState.REQUESTED:
            if self.should_auto_approve(context):
                return self._enter(MachineState.APPROVED, context, path)
            if self.vip_bypasses_pre_approval(context):
                return self._enter(MachineState.SERVICES_REQUEST, context, path)
            return Snapshot(value=state, context=context)

        if state is MachineState.SERVICES_REQUEST:
            tracks = enter_services_request(context)
            return self._resolve_services(Snapshot(value=state, context=context, services=tracks), None, path)

        if state is MachineState.CANCELED:
            context = replace(context, closed_via=ClosedVia.CANCEL)
            return self._wind_down(context, path)

        if state is MachineState.CHECKED_OUT:
            context = replace(context, closed_via=ClosedVia.CHECK_OUT)
            return self._wind_down(context, path)

        if state is MachineState.NO_SHOW:
            context = replace(context, closed_via=ClosedVia.NO_SHOW)
            return self._enter(MachineState.CLOSED, context, path)

        if state is MachineState.SERVICE_CLOSEOUT:
            closeouts = enter_service_closeout(context)
            if all_closed_out(closeouts):
                return self._enter(MachineState.CLOSED, context, path)
            return Snapshot(value=state, context=context, closeouts=closeouts)

        return Snapshot(value=state, context=context)

    def _wind_down(self, context: BookingContext, path: _Path) -> Snapshot:
        if has_approved_services(context):
            return self._enter(MachineState.SERVICE_CLOSEOUT, context, path)
        return self._enter(MachineState.CLOSED, context, path)

    def _resolve_services(self, snapshot: Snapshot, event: Event | None, path: _Path) -> Snapshot:
        outcome = evaluate_rendezvous(snapshot.services)
        if outcome is RendezvousOutcome.ALL_APPROVED:
            return self._enter(MachineState.APPROVED, snapshot.context, path)
        if outcome is RendezvousOutcome.ANY_DECLINED:
            context = _with_decline_reason(snapshot.context, event)
            return self._enter(MachineState.DECLINED, context, path)
        return snapshot

    # -- event handlers ---------------------------------------------------

    def _on_requested(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if not isinstance(event, BookingEvent):
            return None
        context = snapshot.context
        if event.type is EventType.APPROVE:
            if self.should_auto_approve(context):
                return self._enter(MachineState.APPROVED, context, path)
            return self._enter(MachineState.PRE_APPROVED, context, path)
        if event.type is EventType.DECLINE:
            return self._enter(MachineState.DECLINED, _with_decline_reason(context, event), path)
        if event.type is EventType.CANCEL:
            return self._enter(MachineState.CANCELED, context, path)
        return None

    def _on_pre_approved(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if not isinstance(event, BookingEvent):
            return None
        context = snapshot.context
        if event.type is EventType.APPROVE:
            if all_requested_approved(context):
                return self._enter(MachineState.APPROVED, context, path)
            return self._enter(MachineState.SERVICES_REQUEST, context, path)
        if event.type is EventType.DECLINE:
            return self._enter(MachineState.DECLINED, _with_decline_reason(context, event), path)
        if event.type is EventType.CANCEL:
            return self._enter(MachineState.CANCELED, context, path)
        return None

    def _on_services_request(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if isinstance(event, BookingEvent):
            if event.type is EventType.CANCEL:
                return self._enter(MachineState.CANCELED, snapshot.context, path)
            return None

        tracks = decide_service(snapshot.services, event.category, event.action)
        if tracks is None:
            return None
        approved = dict(snapshot.context.services_approved)
        approved[event.category] = event.action is ServiceAction.APPROVE
        context = replace(snapshot.context, services_approved=approved)
        updated = replace(snapshot, context=context, services=tracks)
        resolved = self._resolve_services(updated, event, path)
        if not path.steps:
            # Rendezvous still pending; the sub-track change alone is the step.
            path.visit(MachineState.SERVICES_REQUEST)
        return resolved

    def _on_approved(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if not isinstance(event, BookingEvent):
            return None
        context = snapshot.context
        if event.type is EventType.DECLINE:
            return self._enter(MachineState.DECLINED, _with_decline_reason(context, event), path)
        if event.type is EventType.CHECK_IN:
            return self._enter(MachineState.CHECKED_IN, context, path)
        if event.type is EventType.CANCEL:
            return self._enter(MachineState.CANCELED, context, path)
        if event.type is EventType.NO_SHOW:
            return self._enter(MachineState.NO_SHOW, context, path)
        if event.type is EventType.AUTO_CLOSE_SCRIPT:
            return self._enter(MachineState.CLOSED, replace(context, closed_via=ClosedVia.AUTO_CLOSE), path)
        return None

    def _on_checked_in(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if not isinstance(event, BookingEvent):
            return None
        context = snapshot.context
        if event.type is EventType.CHECK_OUT:
            return self._enter(MachineState.CHECKED_OUT, context, path)
        if event.type is EventType.NO_SHOW:
            return self._enter(MachineState.NO_SHOW, context, path)
        if event.type is EventType.CANCEL:
            return self._enter(MachineState.CANCELED, context, path)
        return None

    def _on_service_closeout(self, snapshot: Snapshot, event: Event, path: _Path) -> Snapshot | None:
        if not isinstance(event, ServiceEvent) or event.action is not ServiceAction.CLOSEOUT:
            return None
        closeouts = close_out_service(snapshot.closeouts, event.category)
        if closeouts is None:
            return None
        if all_closed_out(closeouts):
            return self._enter(MachineState.CLOSED, snapshot.context, path)
        path.visit(MachineState.SERVICE_CLOSEOUT)
        return replace(snapshot, closeouts=closeouts)


def _with_decline_reason(context: BookingContext, event: Event | None) -> BookingContext:
    reason = (event.reason or "").strip() if event is not None else ""
    return replace(context, decline_reason=reason or SERVICE_DECLINE_REASON)
