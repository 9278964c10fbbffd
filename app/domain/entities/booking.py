from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from app.domain.entities.services import ServiceCategory, dump_service_flags, parse_service_flags
from app.domain.entities.snapshot import (
    SelectedRoom,
    Snapshot,
    dump_datetime,
    parse_datetime,
    room_from_dict,
    room_to_dict,
    snapshot_from_dict,
    snapshot_to_dict,
)


# (attribute, document key) pairs for every `<milestone>At` / `<milestone>By` field.
MILESTONE_FIELDS: tuple[tuple[str, str], ...] = (
    ("first_approved_at", "firstApprovedAt"),
    ("first_approved_by", "firstApprovedBy"),
    ("final_approved_at", "finalApprovedAt"),
    ("final_approved_by", "finalApprovedBy"),
    ("declined_at", "declinedAt"),
    ("declined_by", "declinedBy"),
    ("canceled_at", "canceledAt"),
    ("canceled_by", "canceledBy"),
    ("checked_in_at", "checkedInAt"),
    ("checked_in_by", "checkedInBy"),
    ("checked_out_at", "checkedOutAt"),
    ("checked_out_by", "checkedOutBy"),
    ("no_showed_at", "noShowedAt"),
    ("no_showed_by", "noShowedBy"),
    ("closed_at", "closedAt"),
    ("closed_by", "closedBy"),
    ("modified_at", "modifiedAt"),
    ("modified_by", "modifiedBy"),
)

APPROVAL_FIELDS: tuple[str, ...] = (
    "firstApprovedAt",
    "firstApprovedBy",
    "finalApprovedAt",
    "finalApprovedBy",
)

_DOCUMENT_KEYS = dict(MILESTONE_FIELDS)


@dataclass(frozen=True)
class Booking:
    booking_id: str
    tenant: str
    calendar_event_id: str
    request_number: int
    email: str
    title: str
    start_date: datetime
    end_date: datetime
    selected_rooms: tuple[SelectedRoom, ...] = ()
    description: str | None = None
    requested_at: datetime | None = None
    origin: str = "user"
    is_vip: bool = False
    is_walk_in: bool = False
    services_requested: Mapping[ServiceCategory, bool] = field(default_factory=dict)
    services_approved: Mapping[ServiceCategory, bool] = field(default_factory=dict)
    status: str | None = None
    decline_reason: str | None = None
    xstate_data: Snapshot | None = None

    first_approved_at: datetime | None = None
    first_approved_by: str | None = None
    final_approved_at: datetime | None = None
    final_approved_by: str | None = None
    declined_at: datetime | None = None
    declined_by: str | None = None
    canceled_at: datetime | None = None
    canceled_by: str | None = None
    checked_in_at: datetime | None = None
    checked_in_by: str | None = None
    checked_out_at: datetime | None = None
    checked_out_by: str | None = None
    no_showed_at: datetime | None = None
    no_showed_by: str | None = None
    closed_at: datetime | None = None
    closed_by: str | None = None
    modified_at: datetime | None = None
    modified_by: str | None = None

    @property
    def room_ids(self) -> str:
        return ", ".join(str(room.room_id) for room in self.selected_rooms)

    @property
    def primary_calendar_id(self) -> str | None:
        for room in self.selected_rooms:
            if room.calendar_id:
                return room.calendar_id
        return None


def milestone_key(attribute: str) -> str:
    return _DOCUMENT_KEYS[attribute]


def booking_to_document(booking: Booking) -> dict[str, Any]:
    """Serialize to the camelCase store document. None values are omitted."""
    doc: dict[str, Any] = {
        "bookingId": booking.booking_id,
        "tenant": booking.tenant,
        "calendarEventId": booking.calendar_event_id,
        "requestNumber": booking.request_number,
        "email": booking.email,
        "title": booking.title,
        "startDate": dump_datetime(booking.start_date),
        "endDate": dump_datetime(booking.end_date),
        "selectedRooms": [room_to_dict(r) for r in booking.selected_rooms],
        "roomId": booking.room_ids,
        "origin": booking.origin,
        "isVip": booking.is_vip,
        "isWalkIn": booking.is_walk_in,
        "servicesRequested": dump_service_flags(booking.services_requested),
        "servicesApproved": dump_service_flags(booking.services_approved),
    }
    optional = {
        "description": booking.description,
        "requestedAt": dump_datetime(booking.requested_at),
        "status": booking.status,
        "declineReason": booking.decline_reason,
        "xstateData": snapshot_to_dict(booking.xstate_data) if booking.xstate_data else None,
    }
    for attribute, key in MILESTONE_FIELDS:
        value = getattr(booking, attribute)
        optional[key] = dump_datetime(value) if isinstance(value, datetime) else value
    doc.update({key: value for key, value in optional.items() if value is not None})
    return doc


def booking_from_document(doc: Mapping[str, Any]) -> Booking:
    snapshot = snapshot_from_dict(doc["xstateData"]) if doc.get("xstateData") else None
    milestones: dict[str, Any] = {}
    for attribute, key in MILESTONE_FIELDS:
        raw = doc.get(key)
        milestones[attribute] = parse_datetime(raw) if attribute.endswith("_at") else raw

    return Booking(
        booking_id=str(doc["bookingId"]),
        tenant=str(doc["tenant"]),
        calendar_event_id=str(doc["calendarEventId"]),
        request_number=int(doc.get("requestNumber") or 0),
        email=str(doc.get("email") or ""),
        title=str(doc.get("title") or ""),
        start_date=parse_datetime(doc.get("startDate")),
        end_date=parse_datetime(doc.get("endDate")),
        selected_rooms=tuple(room_from_dict(r) for r in doc.get("selectedRooms") or []),
        description=doc.get("description"),
        requested_at=parse_datetime(doc.get("requestedAt")),
        origin=str(doc.get("origin") or "user"),
        is_vip=bool(doc.get("isVip", False)),
        is_walk_in=bool(doc.get("isWalkIn", False)),
        services_requested=parse_service_flags(doc.get("servicesRequested")),
        services_approved=parse_service_flags(doc.get("servicesApproved")),
        status=doc.get("status"),
        decline_reason=doc.get("declineReason"),
        xstate_data=snapshot,
        **milestones,
    )
