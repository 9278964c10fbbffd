from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from app.domain.entities.snapshot import dump_datetime, parse_datetime


@dataclass(frozen=True)
class HistoryLogEntry:
    """Append-only audit record of one booking transition."""

    booking_id: str
    calendar_event_id: str
    status: str
    changed_by: str
    request_number: int
    timestamp: datetime
    tenant: str
    note: str | None = None


def entry_to_document(entry: HistoryLogEntry) -> dict[str, Any]:
    return {
        "bookingId": entry.booking_id,
        "calendarEventId": entry.calendar_event_id,
        "status": entry.status,
        "changedBy": entry.changed_by,
        "requestNumber": entry.request_number,
        "note": entry.note,
        "timestamp": dump_datetime(entry.timestamp),
        "tenant": entry.tenant,
    }


def entry_from_document(doc: Mapping[str, Any]) -> HistoryLogEntry:
    return HistoryLogEntry(
        booking_id=str(doc["bookingId"]),
        calendar_event_id=str(doc["calendarEventId"]),
        status=str(doc["status"]),
        changed_by=str(doc["changedBy"]),
        request_number=int(doc.get("requestNumber") or 0),
        timestamp=parse_datetime(doc["timestamp"]),
        tenant=str(doc.get("tenant") or ""),
        note=doc.get("note"),
    )
