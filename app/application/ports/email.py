from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class BookingEmail:
    calendar_event_id: str
    target_email: str
    header_message: str
    status: str
    tenant: str


class EmailPort(ABC):
    @abstractmethod
    def send_booking_email(self, email: BookingEmail) -> None:
        raise NotImplementedError
