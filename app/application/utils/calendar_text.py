from __future__ import annotations

from app.domain.entities.booking import Booking


DEFAULT_TITLE_MAX_LENGTH = 25
ELLIPSIS = "..."


def truncate_title(title: str, max_length: int = DEFAULT_TITLE_MAX_LENGTH) -> str:
    if len(title) > max_length:
        return title[:max_length] + ELLIPSIS
    return title


def event_title(status: str, room_ids: str, title: str, max_length: int = DEFAULT_TITLE_MAX_LENGTH) -> str:
    """Calendar title: "[<STATUS>] <roomIds> <bookingTitle>"."""
    return f"[{status}] {room_ids} {truncate_title(title, max_length)}"


def booking_event_title(booking: Booking, status: str, max_length: int = DEFAULT_TITLE_MAX_LENGTH) -> str:
    return event_title(status, booking.room_ids, booking.title, max_length)


def booking_description(booking: Booking, status: str) -> str:
    lines = [
        f"Request #{booking.request_number}",
        f"Status: {status}",
        f"Rooms: {booking.room_ids}",
        f"Requested by: {booking.email}",
    ]
    if booking.description:
        lines.append("")
        lines.append(booking.description)
    return "\n".join(lines)
