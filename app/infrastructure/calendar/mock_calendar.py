from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.application.ports.calendar import CalendarPort


@dataclass
class MockEvent:
    calendar_id: str
    title: str
    description: str
    start: datetime
    end: datetime
    attendee_calendar_ids: list[str] = field(default_factory=list)


class MockCalendar(CalendarPort):
    def __init__(self) -> None:
        self._events: dict[str, MockEvent] = {}
        self._counter = 0
        self.patches: list[tuple[str, str, dict[str, Any]]] = []
        self.deleted: list[str] = []
        self._logger = logging.getLogger(__name__)

    def get_event(self, event_id: str) -> MockEvent | None:
        return self._events.get(event_id)

    def create_event(
        self,
        calendar_id: str,
        title: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_calendar_ids: list[str] | None = None,
    ) -> str:
        self._counter += 1
        event_id = f"mock_event_{self._counter}"
        self._events[event_id] = MockEvent(
            calendar_id=calendar_id,
            title=title,
            description=description,
            start=start,
            end=end,
            attendee_calendar_ids=list(attendee_calendar_ids or []),
        )
        self._logger.info(
            "Mock calendar event created",
            extra={
                "calendar_event_id": event_id,
                "start": start.isoformat(),
                "end": end.isoformat(),
                "title": title,
            },
        )
        return event_id

    def patch_event(self, calendar_id: str, event_id: str, fields: dict[str, Any]) -> None:
        self.patches.append((calendar_id, event_id, dict(fields)))
        event = self._events.get(event_id)
        if event is None:
            self._logger.warning("Mock calendar event not found", extra={"calendar_event_id": event_id})
            return
        for key, value in fields.items():
            if key in {"start", "end"} and isinstance(value, str):
                value = datetime.fromisoformat(value)
            setattr(event, key, value)
        self._logger.info("Mock calendar event patched", extra={"calendar_event_id": event_id, "title": event.title})

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        self.deleted.append(event_id)
        if self._events.pop(event_id, None) is not None:
            self._logger.info("Mock calendar event deleted", extra={"calendar_event_id": event_id})
