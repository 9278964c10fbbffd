class BookingValidationError(ValueError):
    """Raised when a request payload is missing or carries invalid fields."""
    pass


class BookingNotFoundError(LookupError):
    """Raised when no booking exists for the given calendar event id."""

    def __init__(self, calendar_event_id: str, tenant: str) -> None:
        super().__init__(f"Booking not found: {calendar_event_id}")
        self.calendar_event_id = calendar_event_id
        self.tenant = tenant


class BookingPersistenceError(RuntimeError):
    """Raised when the authoritative booking record could not be written."""
    pass


class CalendarUpstreamError(RuntimeError):
    """Raised when the calendar provider fails (timeouts, network errors, bad responses)."""
    pass


class EmailUpstreamError(RuntimeError):
    """Raised when the email sender fails."""
    pass

