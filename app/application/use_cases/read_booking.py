from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from app.application.exceptions import BookingNotFoundError
from app.application.ports.booking_store import BookingStorePort
from app.domain.entities.booking import Booking
from app.domain.entities.history import HistoryLogEntry
from app.domain.entities.snapshot import Snapshot
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine
from app.domain.machine.rehydration import snapshot_for


@dataclass(frozen=True)
class BookingStateView:
    booking: Booking
    snapshot: Snapshot
    available_events: list[str]


class ReadBookingUseCase:
    def __init__(self, store: BookingStorePort, policy_for: Callable[[str], TenantPolicy]) -> None:
        self._store = store
        self._policy_for = policy_for

    def _load(self, tenant: str, calendar_event_id: str) -> Booking:
        booking = self._store.get_by_calendar_event_id(tenant, calendar_event_id)
        if booking is None:
            raise BookingNotFoundError(calendar_event_id, tenant)
        return booking

    def current_state(self, tenant: str, calendar_event_id: str) -> BookingStateView:
        booking = self._load(tenant, calendar_event_id)
        snapshot = snapshot_for(booking)
        machine = BookingMachine(self._policy_for(tenant))
        return BookingStateView(booking=booking, snapshot=snapshot, available_events=machine.available_events(snapshot))

    def history(self, tenant: str, calendar_event_id: str) -> list[HistoryLogEntry]:
        booking = self._load(tenant, calendar_event_id)
        return self._store.list_logs(tenant, booking.booking_id)
