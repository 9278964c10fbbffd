from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from app.domain.entities.booking import Booking
from app.domain.entities.history import HistoryLogEntry


class _DeleteField:
    """Sentinel: passing it as a value to update_fields removes the key."""

    def __repr__(self) -> str:
        return "DELETE_FIELD"


DELETE_FIELD: Any = _DeleteField()


@dataclass(frozen=True)
class BookingQuery:
    end_after: datetime | None = None
    end_before: datetime | None = None

    def matches(self, booking: Booking) -> bool:
        if self.end_after is not None and booking.end_date < self.end_after:
            return False
        if self.end_before is not None and booking.end_date > self.end_before:
            return False
        return True


class BookingStorePort(ABC):
    @abstractmethod
    def get(self, tenant: str, booking_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def get_by_calendar_event_id(self, tenant: str, calendar_event_id: str) -> Booking | None:
        raise NotImplementedError

    @abstractmethod
    def save(self, booking: Booking) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_fields(self, tenant: str, booking_id: str, updates: Mapping[str, Any]) -> Booking:
        """
        Merge camelCase document fields into a stored booking.
        Values equal to DELETE_FIELD remove the key. Returns the updated booking.
        Raises KeyError when the booking does not exist.
        """
        raise NotImplementedError

    @abstractmethod
    def append_log(self, entry: HistoryLogEntry) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_logs(self, tenant: str, booking_id: str) -> list[HistoryLogEntry]:
        """History for one booking, ordered by timestamp then insertion order."""
        raise NotImplementedError

    @abstractmethod
    def query(self, tenant: str, query: BookingQuery) -> list[Booking]:
        raise NotImplementedError

    @abstractmethod
    def next_request_number(self, tenant: str) -> int:
        raise NotImplementedError
