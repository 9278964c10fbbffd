from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Mapping

from app.domain.entities.services import (
    CloseoutTrack,
    ServiceCategory,
    ServiceTrack,
    dump_service_flags,
    parse_service_flags,
)


class MachineState(str, Enum):
    REQUESTED = "Requested"
    PRE_APPROVED = "Pre-approved"
    SERVICES_REQUEST = "Services Request"
    APPROVED = "Approved"
    DECLINED = "Declined"
    CANCELED = "Canceled"  # transient
    CHECKED_IN = "Checked In"
    CHECKED_OUT = "Checked Out"  # transient
    NO_SHOW = "No Show"  # transient
    SERVICE_CLOSEOUT = "Service Closeout"
    CLOSED = "Closed"


TERMINAL_STATES = frozenset({MachineState.DECLINED, MachineState.CLOSED})


class ClosedVia(str, Enum):
    CANCEL = "cancel"
    NO_SHOW = "noShow"
    CHECK_OUT = "checkOut"
    AUTO_CLOSE = "autoCloseScript"


@dataclass(frozen=True)
class SelectedRoom:
    room_id: int
    calendar_id: str | None = None
    should_auto_approve: bool = False
    name: str | None = None


@dataclass(frozen=True)
class CalendarInfo:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class BookingContext:
    tenant: str
    calendar_event_id: str | None = None
    email: str | None = None
    selected_rooms: tuple[SelectedRoom, ...] = ()
    booking_calendar_info: CalendarInfo | None = None
    is_vip: bool = False
    is_walk_in: bool = False
    services_requested: Mapping[ServiceCategory, bool] = field(default_factory=dict)
    services_approved: Mapping[ServiceCategory, bool] = field(default_factory=dict)
    decline_reason: str | None = None
    closed_via: ClosedVia | None = None
    # Rebuilt from milestone timestamps of a booking stored without a snapshot.
    restored_from_status: bool = False


@dataclass(frozen=True)
class Snapshot:
    """Persisted machine state of one booking.

    `services` holds the Services Request region, `closeouts` the Service
    Closeout region; both are empty in every other state.
    """

    value: MachineState
    context: BookingContext
    services: Mapping[ServiceCategory, ServiceTrack] = field(default_factory=dict)
    closeouts: Mapping[ServiceCategory, CloseoutTrack] = field(default_factory=dict)

    def matches(self, state: MachineState | str) -> bool:
        return self.value == MachineState(state)

    @property
    def state_value(self) -> str | dict[str, dict[str, str]]:
        if self.value is MachineState.SERVICES_REQUEST:
            return {self.value.value: {c.value: t.value for c, t in self.services.items()}}
        if self.value is MachineState.SERVICE_CLOSEOUT:
            return {self.value.value: {c.value: t.value for c, t in self.closeouts.items()}}
        return self.value.value


def parse_datetime(value: Any) -> datetime | None:
    """ISO-8601 to an aware datetime; naive values are taken as UTC."""
    if value is None or value == "":
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except (ValueError, TypeError):
            return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def dump_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def room_to_dict(room: SelectedRoom) -> dict[str, Any]:
    data: dict[str, Any] = {"roomId": room.room_id, "shouldAutoApprove": room.should_auto_approve}
    if room.calendar_id is not None:
        data["calendarId"] = room.calendar_id
    if room.name is not None:
        data["name"] = room.name
    return data


def room_from_dict(data: Mapping[str, Any]) -> SelectedRoom:
    return SelectedRoom(
        room_id=int(data["roomId"]),
        calendar_id=data.get("calendarId"),
        should_auto_approve=bool(data.get("shouldAutoApprove", False)),
        name=data.get("name"),
    )


def context_to_dict(context: BookingContext) -> dict[str, Any]:
    data: dict[str, Any] = {
        "tenant": context.tenant,
        "calendarEventId": context.calendar_event_id,
        "email": context.email,
        "selectedRooms": [room_to_dict(r) for r in context.selected_rooms],
        "isVip": context.is_vip,
        "isWalkIn": context.is_walk_in,
        "servicesRequested": dump_service_flags(context.services_requested),
        "servicesApproved": dump_service_flags(context.services_approved),
    }
    if context.booking_calendar_info is not None:
        data["bookingCalendarInfo"] = {
            "startStr": dump_datetime(context.booking_calendar_info.start),
            "endStr": dump_datetime(context.booking_calendar_info.end),
        }
    if context.decline_reason is not None:
        data["declineReason"] = context.decline_reason
    if context.closed_via is not None:
        data["closedVia"] = context.closed_via.value
    if context.restored_from_status:
        data["_restoredFromStatus"] = True
    return data


def context_from_dict(data: Mapping[str, Any]) -> BookingContext:
    calendar_info = None
    raw_info = data.get("bookingCalendarInfo") or {}
    start = parse_datetime(raw_info.get("startStr"))
    end = parse_datetime(raw_info.get("endStr"))
    if start is not None and end is not None:
        calendar_info = CalendarInfo(start=start, end=end)

    closed_via = data.get("closedVia")
    return BookingContext(
        tenant=str(data.get("tenant") or ""),
        calendar_event_id=data.get("calendarEventId"),
        email=data.get("email"),
        selected_rooms=tuple(room_from_dict(r) for r in data.get("selectedRooms") or []),
        booking_calendar_info=calendar_info,
        is_vip=bool(data.get("isVip", False)),
        is_walk_in=bool(data.get("isWalkIn", False)),
        services_requested=parse_service_flags(data.get("servicesRequested")),
        services_approved=parse_service_flags(data.get("servicesApproved")),
        decline_reason=data.get("declineReason"),
        closed_via=ClosedVia(closed_via) if closed_via else None,
        restored_from_status=bool(data.get("_restoredFromStatus", False)),
    )


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    return {"value": snapshot.state_value, "context": context_to_dict(snapshot.context)}


def snapshot_from_dict(data: Mapping[str, Any]) -> Snapshot:
    """Inverse of snapshot_to_dict. Raises ValueError on an unknown state value."""
    raw_value = data.get("value")
    context = context_from_dict(data.get("context") or {})

    if isinstance(raw_value, Mapping):
        if len(raw_value) != 1:
            raise ValueError(f"Unsupported state value: {raw_value!r}")
        (name, regions), = raw_value.items()
        state = MachineState(name)
        if state is MachineState.SERVICES_REQUEST:
            services = {ServiceCategory(c): ServiceTrack(t) for c, t in (regions or {}).items()}
            return Snapshot(value=state, context=context, services=services)
        if state is MachineState.SERVICE_CLOSEOUT:
            closeouts = {ServiceCategory(c): CloseoutTrack(t) for c, t in (regions or {}).items()}
            return Snapshot(value=state, context=context, closeouts=closeouts)
        raise ValueError(f"State {name!r} has no parallel regions")

    return Snapshot(value=MachineState(raw_value), context=context)
