from __future__ import annotations

from enum import Enum

from app.domain.entities.snapshot import ClosedVia, MachineState, Snapshot


class BookingStatusLabel(str, Enum):
    REQUESTED = "REQUESTED"
    PRE_APPROVED = "PRE-APPROVED"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    CANCELED = "CANCELED"
    CHECKED_IN = "CHECKED-IN"
    CHECKED_OUT = "CHECKED-OUT"
    NO_SHOW = "NO-SHOW"
    CLOSED = "CLOSED"
    WALK_IN = "WALK-IN"
    UNKNOWN = "UNKNOWN"


_LABELS_BY_STATE = {
    MachineState.REQUESTED: BookingStatusLabel.REQUESTED,
    MachineState.PRE_APPROVED: BookingStatusLabel.PRE_APPROVED,
    MachineState.SERVICES_REQUEST: BookingStatusLabel.PRE_APPROVED,
    MachineState.APPROVED: BookingStatusLabel.APPROVED,
    MachineState.DECLINED: BookingStatusLabel.DECLINED,
    MachineState.CANCELED: BookingStatusLabel.CANCELED,
    MachineState.CHECKED_IN: BookingStatusLabel.CHECKED_IN,
    MachineState.CHECKED_OUT: BookingStatusLabel.CHECKED_OUT,
    MachineState.NO_SHOW: BookingStatusLabel.NO_SHOW,
    MachineState.SERVICE_CLOSEOUT: BookingStatusLabel.CHECKED_OUT,
    MachineState.CLOSED: BookingStatusLabel.CLOSED,
}


def status_for_state(state: MachineState) -> BookingStatusLabel:
    return _LABELS_BY_STATE.get(state, BookingStatusLabel.UNKNOWN)


def status_from_snapshot(snapshot: Snapshot) -> BookingStatusLabel:
    """Status label mirrored onto the booking record for a resting snapshot."""
    closed_via = snapshot.context.closed_via
    if snapshot.value is MachineState.SERVICE_CLOSEOUT and closed_via is ClosedVia.CANCEL:
        return BookingStatusLabel.CANCELED
    if snapshot.value is MachineState.CLOSED:
        if closed_via is ClosedVia.CANCEL:
            return BookingStatusLabel.CANCELED
        if closed_via is ClosedVia.NO_SHOW:
            return BookingStatusLabel.NO_SHOW
        if closed_via is ClosedVia.CHECK_OUT:
            return BookingStatusLabel.CHECKED_OUT
    return status_for_state(snapshot.value)
