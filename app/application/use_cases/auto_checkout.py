from __future__ import annotations

import logging
from datetime import timedelta
from typing import Iterable

from app.application.dto.job_summary import JobCandidate, JobSummary
from app.application.ports.booking_store import BookingQuery, BookingStorePort
from app.application.use_cases.dispatch_event import DispatchBookingEventUseCase
from app.application.utils.clock import Clock, utc_now
from app.domain.entities.events import SYSTEM_ACTOR, BookingEvent, EventType
from app.domain.entities.snapshot import MachineState
from app.domain.machine.rehydration import snapshot_for


class AutoCheckoutUseCase:
    """
    Checks out bookings still marked Checked In well after their end time.

    Every tenant and every booking is processed independently: a failure is
    recorded in the summary and the run moves on to the next one.
    """

    def __init__(
        self,
        store: BookingStorePort,
        dispatcher: DispatchBookingEventUseCase,
        tenants: Iterable[str],
        grace_minutes: int = 30,
        lookback_hours: int = 24,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._tenants = list(tenants)
        self._grace = timedelta(minutes=grace_minutes)
        self._lookback = timedelta(hours=lookback_hours)
        self._clock = clock
        self._logger = logging.getLogger(__name__)

    def execute(self, dry_run: bool = False) -> JobSummary:
        summary = JobSummary(dry_run=dry_run)
        for tenant in self._tenants:
            try:
                self._process_tenant(tenant, summary, dry_run)
            except Exception as e:
                self._logger.exception("Auto-checkout failed for tenant", extra={"tenant": tenant, "error": str(e)})
                summary.record_error(tenant, e)

        self._logger.info(
            "Auto-checkout finished",
            extra={
                "dry_run": dry_run,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
        return summary

    def _process_tenant(self, tenant: str, summary: JobSummary, dry_run: bool) -> None:
        now = self._clock()
        bookings = self._store.query(tenant, BookingQuery(end_after=now - self._lookback, end_before=now))

        for booking in bookings:
            if not snapshot_for(booking).matches(MachineState.CHECKED_IN):
                continue
            overdue = now - booking.end_date
            if overdue < self._grace:
                summary.skipped += 1
                continue

            summary.candidates.append(
                JobCandidate(
                    tenant=tenant,
                    calendar_event_id=booking.calendar_event_id,
                    end_date=booking.end_date.isoformat(),
                    minutes_past_end=int(overdue.total_seconds() // 60),
                )
            )
            if dry_run:
                continue

            try:
                result = self._dispatcher.execute(
                    tenant, booking.calendar_event_id, BookingEvent(type=EventType.CHECK_OUT, email=SYSTEM_ACTOR)
                )
            except Exception as e:
                self._logger.exception(
                    "Auto-checkout failed for booking",
                    extra={"tenant": tenant, "calendar_event_id": booking.calendar_event_id, "error": str(e)},
                )
                summary.record_error(tenant, e, booking.calendar_event_id)
                continue

            if result.changed:
                summary.succeeded += 1
            else:
                summary.skipped += 1
