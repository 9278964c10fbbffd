from __future__ import annotations

from dataclasses import replace

from app.domain.entities.booking import Booking
from app.domain.entities.snapshot import BookingContext, CalendarInfo, ClosedVia, MachineState, Snapshot


def context_from_booking(booking: Booking, **overrides) -> BookingContext:
    context = BookingContext(
        tenant=booking.tenant,
        calendar_event_id=booking.calendar_event_id,
        email=booking.email,
        selected_rooms=booking.selected_rooms,
        booking_calendar_info=CalendarInfo(start=booking.start_date, end=booking.end_date),
        is_vip=booking.is_vip,
        is_walk_in=booking.is_walk_in,
        services_requested=dict(booking.services_requested),
        services_approved=dict(booking.services_approved),
        decline_reason=booking.decline_reason,
    )
    return replace(context, **overrides) if overrides else context


def restore_snapshot(booking: Booking) -> Snapshot:
    """Rebuild a snapshot for a booking persisted before it carried one.

    The state is inferred from the most advanced milestone timestamp. The
    context is flagged so the auto-approval guard never fires for it.
    """
    context = context_from_booking(booking, restored_from_status=True)

    if booking.no_showed_at:
        return Snapshot(value=MachineState.CLOSED, context=replace(context, closed_via=ClosedVia.NO_SHOW))
    if booking.checked_out_at or booking.closed_at:
        return Snapshot(value=MachineState.CLOSED, context=replace(context, closed_via=ClosedVia.CHECK_OUT))
    if booking.canceled_at:
        return Snapshot(value=MachineState.CLOSED, context=replace(context, closed_via=ClosedVia.CANCEL))
    if booking.checked_in_at:
        return Snapshot(value=MachineState.CHECKED_IN, context=context)
    if booking.declined_at:
        return Snapshot(value=MachineState.DECLINED, context=context)
    if booking.final_approved_at:
        return Snapshot(value=MachineState.APPROVED, context=context)
    if booking.first_approved_at:
        return Snapshot(value=MachineState.PRE_APPROVED, context=context)
    return Snapshot(value=MachineState.REQUESTED, context=context)


def snapshot_for(booking: Booking) -> Snapshot:
    return booking.xstate_data if booking.xstate_data is not None else restore_snapshot(booking)
