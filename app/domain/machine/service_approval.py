"""
Parallel service regions of the booking machine.

Each requested category runs its own Requested -> Approved | Declined track
while the booking is in Services Request, and each approved category runs a
Closeout Pending -> Closed Out track while the booking is in Service
Closeout. Categories that were never requested have no track and never block
the rendezvous.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from app.domain.entities.events import ServiceAction
from app.domain.entities.services import (
    CloseoutTrack,
    ServiceCategory,
    ServiceTrack,
    approved_categories,
    requested_categories,
)
from app.domain.entities.snapshot import BookingContext


SERVICE_DECLINE_REASON = "Service requirements could not be fulfilled"


class RendezvousOutcome(str, Enum):
    PENDING = "pending"
    ALL_APPROVED = "all_approved"
    ANY_DECLINED = "any_declined"


def has_requested_services(context: BookingContext) -> bool:
    return bool(requested_categories(context.services_requested))


def has_approved_services(context: BookingContext) -> bool:
    return bool(approved_categories(context.services_requested, context.services_approved))


def all_requested_approved(context: BookingContext) -> bool:
    """True when every requested category is already approved (vacuously true with none)."""
    return all(context.services_approved.get(c) is True for c in requested_categories(context.services_requested))


def enter_services_request(context: BookingContext) -> dict[ServiceCategory, ServiceTrack]:
    tracks: dict[ServiceCategory, ServiceTrack] = {}
    for category in requested_categories(context.services_requested):
        if context.services_approved.get(category) is True:
            tracks[category] = ServiceTrack.APPROVED
        else:
            tracks[category] = ServiceTrack.REQUESTED
    return tracks


def decide_service(
    tracks: Mapping[ServiceCategory, ServiceTrack],
    category: ServiceCategory,
    action: ServiceAction,
) -> dict[ServiceCategory, ServiceTrack] | None:
    """Apply an approve/decline to one track; None when the track cannot take it."""
    if action is ServiceAction.CLOSEOUT:
        return None
    if tracks.get(category) is not ServiceTrack.REQUESTED:
        return None
    updated = dict(tracks)
    updated[category] = ServiceTrack.APPROVED if action is ServiceAction.APPROVE else ServiceTrack.DECLINED
    return updated


def evaluate_rendezvous(tracks: Mapping[ServiceCategory, ServiceTrack]) -> RendezvousOutcome:
    """All approved -> ALL_APPROVED, any declined -> ANY_DECLINED, otherwise PENDING.

    A decline short-circuits even while other tracks are still pending.
    """
    if any(track is ServiceTrack.DECLINED for track in tracks.values()):
        return RendezvousOutcome.ANY_DECLINED
    if all(track is ServiceTrack.APPROVED for track in tracks.values()):
        return RendezvousOutcome.ALL_APPROVED
    return RendezvousOutcome.PENDING


def enter_service_closeout(context: BookingContext) -> dict[ServiceCategory, CloseoutTrack]:
    return {
        category: CloseoutTrack.PENDING
        for category in approved_categories(context.services_requested, context.services_approved)
    }


def close_out_service(
    closeouts: Mapping[ServiceCategory, CloseoutTrack],
    category: ServiceCategory,
) -> dict[ServiceCategory, CloseoutTrack] | None:
    if closeouts.get(category) is not CloseoutTrack.PENDING:
        return None
    updated = dict(closeouts)
    updated[category] = CloseoutTrack.CLOSED_OUT
    return updated


def all_closed_out(closeouts: Mapping[ServiceCategory, CloseoutTrack]) -> bool:
    return all(track is CloseoutTrack.CLOSED_OUT for track in closeouts.values())
