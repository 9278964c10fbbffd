from __future__ import annotations

import logging
from datetime import datetime
from typing import Any
from urllib.parse import quote

import httpx

from app.application.exceptions import CalendarUpstreamError
from app.application.ports.calendar import CalendarPort
from app.core.config import settings


class GoogleCalendar(CalendarPort):
    """Google Calendar v3 REST adapter."""

    def __init__(
        self,
        access_token: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._access_token = access_token or settings.GOOGLE_CALENDAR_ACCESS_TOKEN
        self._base_url = (base_url or settings.GOOGLE_CALENDAR_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

        if not self._access_token:
            raise ValueError("GOOGLE_CALENDAR_ACCESS_TOKEN is required for Google Calendar")

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}", "Content-Type": "application/json"}

    def _events_url(self, calendar_id: str, event_id: str | None = None) -> str:
        url = f"{self._base_url}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    def create_event(
        self,
        calendar_id: str,
        title: str,
        description: str,
        start: datetime,
        end: datetime,
        attendee_calendar_ids: list[str] | None = None,
    ) -> str:
        payload: dict[str, Any] = {
            "summary": title,
            "description": description,
            "start": {"dateTime": start.isoformat()},
            "end": {"dateTime": end.isoformat()},
        }
        if attendee_calendar_ids:
            payload["attendees"] = [{"email": cid} for cid in attendee_calendar_ids]

        try:
            response = self._client.post(self._events_url(calendar_id), json=payload, headers=self._headers())
            response.raise_for_status()
            event_id = response.json().get("id")
        except (httpx.HTTPError, ValueError) as e:
            self._logger.error("Error creating calendar event", extra={"calendar_id": calendar_id, "error": str(e)})
            raise CalendarUpstreamError(f"Could not create calendar event: {e}") from e

        if not event_id:
            raise CalendarUpstreamError("No event ID returned from Google Calendar API")
        self._logger.info("Calendar event created", extra={"calendar_event_id": event_id, "title": title})
        return str(event_id)

    def patch_event(self, calendar_id: str, event_id: str, fields: dict[str, Any]) -> None:
        payload: dict[str, Any] = {}
        for key, value in fields.items():
            if key == "title":
                payload["summary"] = value
            elif key in {"start", "end"}:
                payload[key] = {"dateTime": value.isoformat() if isinstance(value, datetime) else value}
            else:
                payload[key] = value

        try:
            response = self._client.patch(
                self._events_url(calendar_id, event_id), json=payload, headers=self._headers()
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CalendarUpstreamError(f"Could not patch calendar event {event_id}: {e}") from e
        self._logger.info("Calendar event patched", extra={"calendar_event_id": event_id})

    def delete_event(self, calendar_id: str, event_id: str) -> None:
        try:
            response = self._client.delete(self._events_url(calendar_id, event_id), headers=self._headers())
            if response.status_code in (404, 410):
                self._logger.warning("Calendar event already gone", extra={"calendar_event_id": event_id})
                return
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise CalendarUpstreamError(f"Could not delete calendar event {event_id}: {e}") from e
        self._logger.info("Calendar event deleted", extra={"calendar_event_id": event_id})
