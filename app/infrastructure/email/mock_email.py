from __future__ import annotations

import logging

from app.application.ports.email import BookingEmail, EmailPort


class MockEmailSender(EmailPort):
    def __init__(self) -> None:
        self.sent: list[BookingEmail] = []
        self._logger = logging.getLogger(__name__)

    def send_booking_email(self, email: BookingEmail) -> None:
        self.sent.append(email)
        self._logger.info(
            "Mock booking email",
            extra={
                "calendar_event_id": email.calendar_event_id,
                "tenant": email.tenant,
                "status": email.status,
                "target_email": email.target_email,
            },
        )
