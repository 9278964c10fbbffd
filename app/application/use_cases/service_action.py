from __future__ import annotations

from dataclasses import dataclass

from app.application.exceptions import BookingValidationError
from app.application.use_cases.dispatch_event import DispatchBookingEventUseCase
from app.domain.entities.events import ServiceAction, ServiceEvent
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState


@dataclass(frozen=True)
class ServiceActionResult:
    message: str
    new_state: str | dict[str, dict[str, str]]
    changed: bool
    transitioned_to_approved: bool
    transitioned_to_declined: bool


class ServiceActionUseCase:
    def __init__(self, dispatcher: DispatchBookingEventUseCase) -> None:
        self._dispatcher = dispatcher

    def execute(
        self,
        tenant: str,
        calendar_event_id: str | None,
        service_type: str | None,
        action: str | None,
        email: str | None,
        reason: str | None = None,
    ) -> ServiceActionResult:
        event = build_service_event(calendar_event_id, service_type, action, email, reason)
        result = self._dispatcher.execute(tenant, calendar_event_id, event)

        transition = result.transition
        message = (
            f"{event.category.display_name} service {event.action.past_tense.lower()}"
            if transition.changed
            else f"{event.name} is not available in the current state"
        )
        return ServiceActionResult(
            message=message,
            new_state=transition.snapshot.state_value,
            changed=transition.changed,
            transitioned_to_approved=transition.entered(MachineState.APPROVED),
            transitioned_to_declined=transition.entered(MachineState.DECLINED),
        )


def build_service_event(
    calendar_event_id: str | None,
    service_type: str | None,
    action: str | None,
    email: str | None,
    reason: str | None = None,
) -> ServiceEvent:
    """Validate a service-action payload and build its event.

    Raises BookingValidationError naming the first missing or invalid field.
    """
    missing = [
        name
        for name, value in (
            ("calendarEventId", calendar_event_id),
            ("serviceType", service_type),
            ("action", action),
            ("email", email),
        )
        if not value
    ]
    if missing:
        raise BookingValidationError(f"Missing required fields: {', '.join(missing)}")

    try:
        category = ServiceCategory(service_type)
    except ValueError:
        allowed = ", ".join(c.value for c in ServiceCategory)
        raise BookingValidationError(f"Invalid serviceType: {service_type}. Must be one of: {allowed}") from None
    try:
        service_action = ServiceAction(action)
    except ValueError:
        allowed = ", ".join(a.value for a in ServiceAction)
        raise BookingValidationError(f"Invalid action: {action}. Must be one of: {allowed}") from None

    return ServiceEvent(action=service_action, category=category, email=email, reason=reason)
