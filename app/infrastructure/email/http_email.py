from __future__ import annotations

import logging

import httpx

from app.application.exceptions import EmailUpstreamError
from app.application.ports.email import BookingEmail, EmailPort
from app.core.config import settings


class HttpEmailSender(EmailPort):
    """Posts booking emails to the internal `/api/sendEmail` endpoint."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None, client: httpx.Client | None = None) -> None:
        self._endpoint = f"{(base_url or settings.BASE_URL).rstrip('/')}/api/sendEmail"
        self._client = client or httpx.Client(timeout=timeout or settings.SIDE_EFFECT_TIMEOUT_SECONDS)
        self._logger = logging.getLogger(__name__)

    def send_booking_email(self, email: BookingEmail) -> None:
        payload = {
            "calendarEventId": email.calendar_event_id,
            "targetEmail": email.target_email,
            "headerMessage": email.header_message,
            "status": email.status,
        }
        try:
            resp = self._client.post(self._endpoint, json=payload, headers={"x-tenant": email.tenant})
        except httpx.HTTPError as e:
            raise EmailUpstreamError(f"Email request failed: {e}") from e

        if resp.status_code >= 400:
            self._logger.error(
                "Booking email send failed",
                extra={
                    "status": resp.status_code,
                    "calendar_event_id": email.calendar_event_id,
                    "tenant": email.tenant,
                    "error": resp.text,
                },
            )
            raise EmailUpstreamError(f"Email endpoint returned {resp.status_code}")
