from __future__ import annotations

import logging
from typing import Iterable

from app.application.dto.job_summary import JobSummary
from app.application.ports.booking_store import BookingQuery, BookingStorePort
from app.application.ports.calendar import CalendarPort
from app.application.utils.calendar_text import DEFAULT_TITLE_MAX_LENGTH, booking_event_title
from app.domain.entities.snapshot import MachineState
from app.domain.entities.status import status_from_snapshot
from app.domain.machine.rehydration import snapshot_for


class SyncCalendarsUseCase:
    """Re-applies each open booking's status label to its calendar event title."""

    def __init__(
        self,
        store: BookingStorePort,
        calendar: CalendarPort,
        tenants: Iterable[str],
        title_max_length: int = DEFAULT_TITLE_MAX_LENGTH,
    ) -> None:
        self._store = store
        self._calendar = calendar
        self._tenants = list(tenants)
        self._title_max_length = title_max_length
        self._logger = logging.getLogger(__name__)

    def execute(self) -> JobSummary:
        summary = JobSummary()
        for tenant in self._tenants:
            try:
                bookings = self._store.query(tenant, BookingQuery())
            except Exception as e:
                self._logger.exception("Calendar sync failed for tenant", extra={"tenant": tenant, "error": str(e)})
                summary.record_error(tenant, e)
                continue

            for booking in bookings:
                snapshot = snapshot_for(booking)
                calendar_id = booking.primary_calendar_id
                if snapshot.matches(MachineState.CLOSED) or not calendar_id:
                    summary.skipped += 1
                    continue

                status = status_from_snapshot(snapshot)
                title = booking_event_title(booking, status.value, self._title_max_length)
                try:
                    self._calendar.patch_event(calendar_id, booking.calendar_event_id, {"title": title})
                except Exception as e:
                    self._logger.error(
                        "Calendar sync failed for booking",
                        extra={"tenant": tenant, "calendar_event_id": booking.calendar_event_id, "error": str(e)},
                    )
                    summary.record_error(tenant, e, booking.calendar_event_id)
                    continue
                summary.succeeded += 1

        self._logger.info(
            "Calendar sync finished",
            extra={"succeeded": summary.succeeded, "failed": summary.failed, "skipped": summary.skipped},
        )
        return summary
