from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Union

from app.domain.entities.services import ServiceCategory


SYSTEM_ACTOR = "System"


class EventType(str, Enum):
    APPROVE = "approve"
    DECLINE = "decline"
    CANCEL = "cancel"
    CHECK_IN = "checkIn"
    CHECK_OUT = "checkOut"
    NO_SHOW = "noShow"
    AUTO_CLOSE_SCRIPT = "autoCloseScript"


class ServiceAction(str, Enum):
    APPROVE = "approve"
    DECLINE = "decline"
    CLOSEOUT = "closeout"

    @property
    def past_tense(self) -> str:
        return {
            ServiceAction.APPROVE: "Approved",
            ServiceAction.DECLINE: "Declined",
            ServiceAction.CLOSEOUT: "Closed Out",
        }[self]


@dataclass(frozen=True)
class BookingEvent:
    type: EventType
    email: str | None = None
    reason: str | None = None

    @property
    def name(self) -> str:
        return self.type.value


@dataclass(frozen=True)
class ServiceEvent:
    action: ServiceAction
    category: ServiceCategory
    email: str | None = None
    reason: str | None = None

    @property
    def name(self) -> str:
        return SERVICE_EVENT_NAMES[(self.action, self.category)]


Event = Union[BookingEvent, ServiceEvent]


SERVICE_EVENT_NAMES: dict[tuple[ServiceAction, ServiceCategory], str] = {
    (ServiceAction.APPROVE, ServiceCategory.STAFF): "approveStaff",
    (ServiceAction.APPROVE, ServiceCategory.EQUIPMENT): "approveEquipment",
    (ServiceAction.APPROVE, ServiceCategory.CATERING): "approveCatering",
    (ServiceAction.APPROVE, ServiceCategory.CLEANING): "approveCleaning",
    (ServiceAction.APPROVE, ServiceCategory.SECURITY): "approveSecurity",
    (ServiceAction.APPROVE, ServiceCategory.SETUP): "approveSetup",
    (ServiceAction.DECLINE, ServiceCategory.STAFF): "declineStaff",
    (ServiceAction.DECLINE, ServiceCategory.EQUIPMENT): "declineEquipment",
    (ServiceAction.DECLINE, ServiceCategory.CATERING): "declineCatering",
    (ServiceAction.DECLINE, ServiceCategory.CLEANING): "declineCleaning",
    (ServiceAction.DECLINE, ServiceCategory.SECURITY): "declineSecurity",
    (ServiceAction.DECLINE, ServiceCategory.SETUP): "declineSetup",
    (ServiceAction.CLOSEOUT, ServiceCategory.STAFF): "closeoutStaff",
    (ServiceAction.CLOSEOUT, ServiceCategory.EQUIPMENT): "closeoutEquipment",
    (ServiceAction.CLOSEOUT, ServiceCategory.CATERING): "closeoutCatering",
    (ServiceAction.CLOSEOUT, ServiceCategory.CLEANING): "closeoutCleaning",
    (ServiceAction.CLOSEOUT, ServiceCategory.SECURITY): "closeoutSecurity",
    (ServiceAction.CLOSEOUT, ServiceCategory.SETUP): "closeoutSetup",
}

_SERVICE_EVENTS_BY_NAME = {name: key for key, name in SERVICE_EVENT_NAMES.items()}

EVENT_NAMES: tuple[str, ...] = tuple(t.value for t in EventType) + tuple(SERVICE_EVENT_NAMES.values())


def parse_event(name: str, email: str | None = None, reason: str | None = None) -> Event:
    """Build an event from its wire name, e.g. "checkOut" or "declineStaff".

    Raises ValueError for unknown names.
    """
    if name in _SERVICE_EVENTS_BY_NAME:
        action, category = _SERVICE_EVENTS_BY_NAME[name]
        return ServiceEvent(action=action, category=category, email=email, reason=reason)
    try:
        event_type = EventType(name)
    except ValueError:
        raise ValueError(f"Invalid event type: {name}") from None
    return BookingEvent(type=event_type, email=email, reason=reason)


def actor_of(event: Event, default: str | None = None) -> str:
    return event.email or default or SYSTEM_ACTOR
