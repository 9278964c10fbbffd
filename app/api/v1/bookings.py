from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.v1.auth import get_tenant, require_session
from app.api.v1.schemas import (
    AvailableTransitionsSchema,
    BookingModificationSchema,
    BookingSubmissionSchema,
    BookingSummarySchema,
    HistoryEntrySchema,
    ModificationResponseSchema,
    RoomSchema,
    ServiceActionRequestSchema,
    ServiceActionResponseSchema,
    TransitionRequestSchema,
    TransitionResponseSchema,
)
from app.application.exceptions import (
    BookingNotFoundError,
    BookingPersistenceError,
    BookingValidationError,
    CalendarUpstreamError,
)
from app.application.use_cases.dispatch_event import DispatchBookingEventUseCase
from app.application.use_cases.modify_booking import BookingModification, ModifyBookingUseCase
from app.application.use_cases.read_booking import ReadBookingUseCase
from app.application.use_cases.service_action import ServiceActionUseCase
from app.application.use_cases.submit_booking import BookingSubmission, SubmitBookingUseCase
from app.domain.entities.events import parse_event
from app.domain.entities.services import parse_service_flags
from app.domain.entities.snapshot import SelectedRoom
from app.domain.machine.rehydration import snapshot_for
from app.wiring.dependencies import (
    get_dispatcher,
    get_modify_booking_use_case,
    get_read_booking_use_case,
    get_service_action_use_case,
    get_submit_booking_use_case,
)

router = APIRouter()


def _rooms(rooms: list[RoomSchema]) -> tuple[SelectedRoom, ...]:
    return tuple(
        SelectedRoom(
            room_id=r.room_id,
            calendar_id=r.calendar_id,
            should_auto_approve=r.should_auto_approve,
            name=r.name,
        )
        for r in rooms
    )


@router.post("/bookings", response_model=BookingSummarySchema, status_code=201)
def submit_booking(
    req: BookingSubmissionSchema,
    tenant: str = Depends(get_tenant),
    session_email: str = Depends(require_session),
    uc: SubmitBookingUseCase = Depends(get_submit_booking_use_case),
):
    submission = BookingSubmission(
        tenant=tenant,
        email=req.email or session_email,
        title=req.title,
        description=req.description,
        start_date=req.start_date,
        end_date=req.end_date,
        selected_rooms=_rooms(req.selected_rooms),
        services_requested=parse_service_flags(req.services_requested),
        is_vip=req.is_vip,
        is_walk_in=req.is_walk_in,
        origin=req.origin,
    )
    try:
        booking = uc.execute(submission)
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CalendarUpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except BookingPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return BookingSummarySchema(
        booking_id=booking.booking_id,
        calendar_event_id=booking.calendar_event_id,
        request_number=booking.request_number,
        status=booking.status,
        state=snapshot_for(booking).state_value,
    )


@router.put("/bookings/modification", response_model=ModificationResponseSchema)
def modify_booking(
    req: BookingModificationSchema,
    tenant: str = Depends(get_tenant),
    session_email: str = Depends(require_session),
    uc: ModifyBookingUseCase = Depends(get_modify_booking_use_case),
):
    modification = BookingModification(
        tenant=tenant,
        calendar_event_id=req.calendar_event_id,
        modified_by=req.modified_by or session_email,
        title=req.title,
        description=req.description,
        start_date=req.start_date,
        end_date=req.end_date,
        selected_rooms=_rooms(req.selected_rooms) if req.selected_rooms is not None else None,
        services_requested=(
            parse_service_flags(req.services_requested) if req.services_requested is not None else None
        ),
    )
    try:
        booking = uc.execute(modification)
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CalendarUpstreamError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except BookingPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return ModificationResponseSchema(
        calendar_event_id=booking.calendar_event_id,
        new_state=snapshot_for(booking).state_value,
    )


@router.post("/services", response_model=ServiceActionResponseSchema)
def service_action(
    req: ServiceActionRequestSchema,
    tenant: str = Depends(get_tenant),
    _: str = Depends(require_session),
    uc: ServiceActionUseCase = Depends(get_service_action_use_case),
):
    try:
        result = uc.execute(
            tenant=tenant,
            calendar_event_id=req.calendar_event_id,
            service_type=req.service_type,
            action=req.action,
            email=req.email,
            reason=req.reason,
        )
    except BookingValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookingPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    return ServiceActionResponseSchema(
        message=result.message,
        new_state=result.new_state,
        changed=result.changed,
        transitioned_to_approved=result.transitioned_to_approved,
        transitioned_to_declined=result.transitioned_to_declined,
    )


@router.post("/xstate-transition", response_model=TransitionResponseSchema)
def send_transition(
    req: TransitionRequestSchema,
    tenant: str = Depends(get_tenant),
    session_email: str = Depends(require_session),
    uc: DispatchBookingEventUseCase = Depends(get_dispatcher),
):
    if not req.calendar_event_id or not req.event_type:
        raise HTTPException(status_code=400, detail="Missing required fields: calendarEventId, eventType")
    try:
        event = parse_event(req.event_type, email=req.email or session_email, reason=req.reason)
        result = uc.execute(tenant, req.calendar_event_id, event)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except BookingPersistenceError as e:
        raise HTTPException(status_code=500, detail=str(e))

    transition = result.transition
    return TransitionResponseSchema(
        success=True,
        changed=transition.changed,
        previous_state=transition.previous.state_value if transition.previous else None,
        new_state=transition.snapshot.state_value,
    )


@router.get("/xstate-transition", response_model=AvailableTransitionsSchema)
def available_transitions(
    calendar_event_id: str = Query(..., alias="calendarEventId"),
    tenant: str = Depends(get_tenant),
    _: str = Depends(require_session),
    uc: ReadBookingUseCase = Depends(get_read_booking_use_case),
):
    try:
        view = uc.current_state(tenant, calendar_event_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return AvailableTransitionsSchema(
        current_state=view.snapshot.state_value,
        available_transitions=view.available_events,
    )


@router.get("/booking-logs", response_model=list[HistoryEntrySchema])
def booking_logs(
    calendar_event_id: str = Query(..., alias="calendarEventId"),
    tenant: str = Depends(get_tenant),
    _: str = Depends(require_session),
    uc: ReadBookingUseCase = Depends(get_read_booking_use_case),
):
    try:
        entries = uc.history(tenant, calendar_event_id)
    except BookingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return [
        HistoryEntrySchema(
            booking_id=entry.booking_id,
            calendar_event_id=entry.calendar_event_id,
            status=entry.status,
            changed_by=entry.changed_by,
            request_number=entry.request_number,
            note=entry.note,
            timestamp=entry.timestamp,
        )
        for entry in entries
    ]
