from __future__ import annotations

import copy
import threading
from typing import Any, Mapping

from app.application.ports.booking_store import DELETE_FIELD, BookingQuery, BookingStorePort
from app.domain.entities.booking import Booking, booking_from_document, booking_to_document
from app.domain.entities.history import HistoryLogEntry, entry_from_document, entry_to_document
from app.domain.entities.snapshot import parse_datetime


class MemoryBookingStore(BookingStorePort):
    def __init__(self) -> None:
        self._bookings: dict[str, dict[str, dict[str, Any]]] = {}
        self._logs: dict[str, list[dict[str, Any]]] = {}
        self._counters: dict[str, int] = {}
        self._lock = threading.Lock()  # Guards all three dicts across request threads

    def _documents(self, tenant: str) -> list[dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(doc) for doc in self._bookings.get(tenant, {}).values()]

    def raw(self, tenant: str, booking_id: str) -> dict[str, Any] | None:
        """Stored document as written, for callers that need to see absent keys."""
        with self._lock:
            doc = self._bookings.get(tenant, {}).get(booking_id)
            return copy.deepcopy(doc) if doc is not None else None

    def get(self, tenant: str, booking_id: str) -> Booking | None:
        doc = self.raw(tenant, booking_id)
        return booking_from_document(doc) if doc is not None else None

    def get_by_calendar_event_id(self, tenant: str, calendar_event_id: str) -> Booking | None:
        for doc in self._documents(tenant):
            if doc.get("calendarEventId") == calendar_event_id:
                return booking_from_document(doc)
        return None

    def save(self, booking: Booking) -> None:
        doc = booking_to_document(booking)
        with self._lock:
            self._bookings.setdefault(booking.tenant, {})[booking.booking_id] = doc

    def update_fields(self, tenant: str, booking_id: str, updates: Mapping[str, Any]) -> Booking:
        with self._lock:
            doc = self._bookings.get(tenant, {}).get(booking_id)
            if doc is None:
                raise KeyError(booking_id)
            for key, value in updates.items():
                if value is DELETE_FIELD:
                    doc.pop(key, None)
                else:
                    doc[key] = copy.deepcopy(value)
            doc = copy.deepcopy(doc)
        return booking_from_document(doc)

    def append_log(self, entry: HistoryLogEntry) -> None:
        doc = entry_to_document(entry)
        with self._lock:
            self._logs.setdefault(entry.tenant, []).append(doc)

    def list_logs(self, tenant: str, booking_id: str) -> list[HistoryLogEntry]:
        with self._lock:
            entries = [doc for doc in self._logs.get(tenant, []) if doc["bookingId"] == booking_id]
        # sorted() is stable, so equal timestamps keep insertion order
        entries.sort(key=lambda doc: parse_datetime(doc["timestamp"]))
        return [entry_from_document(doc) for doc in entries]

    def query(self, tenant: str, query: BookingQuery) -> list[Booking]:
        bookings = [booking_from_document(doc) for doc in self._documents(tenant)]
        return [b for b in bookings if query.matches(b)]

    def next_request_number(self, tenant: str) -> int:
        with self._lock:
            self._counters[tenant] = self._counters.get(tenant, 0) + 1
            return self._counters[tenant]
