from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any


class CalendarPort(ABC):
    @abstractmethod
    def create_event(
        self,
        calendar_id: str,
        title: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_calendar_ids: list[str] | None = None,
    ) -> str:
        """Create calendar event. Returns event_id."""
        raise NotImplementedError

    @abstractmethod
    def patch_event(self, calendar_id: str, event_id: str, fields: dict[str, Any]) -> None:
        """Update selected fields (title, description, start, end) of an event."""
        raise NotImplementedError

    @abstractmethod
    def delete_event(self, calendar_id: str, event_id: str) -> None:
        raise NotImplementedError
