from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RoomSchema(CamelModel):
    room_id: int
    calendar_id: str | None = None
    should_auto_approve: bool = False
    name: str | None = None


class BookingSubmissionSchema(CamelModel):
    email: str | None = None
    title: str
    description: str | None = None
    start_date: datetime
    end_date: datetime
    selected_rooms: list[RoomSchema] = Field(default_factory=list)
    services_requested: dict[str, bool] = Field(default_factory=dict)
    is_vip: bool = False
    is_walk_in: bool = False
    origin: str = "user"


class BookingSummarySchema(CamelModel):
    booking_id: str
    calendar_event_id: str
    request_number: int
    status: str | None = None
    state: Any = None


class BookingModificationSchema(CamelModel):
    calendar_event_id: str
    modified_by: str | None = None
    title: str | None = None
    description: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    selected_rooms: list[RoomSchema] | None = None
    services_requested: dict[str, bool] | None = None


class ModificationResponseSchema(CamelModel):
    calendar_event_id: str
    new_state: Any


# Required fields are checked by the use cases so that a missing field is a 400.
class ServiceActionRequestSchema(CamelModel):
    calendar_event_id: str | None = None
    service_type: str | None = None
    action: str | None = None
    email: str | None = None
    reason: str | None = None


class ServiceActionResponseSchema(CamelModel):
    message: str
    new_state: Any
    changed: bool
    transitioned_to_approved: bool
    transitioned_to_declined: bool


class TransitionRequestSchema(CamelModel):
    calendar_event_id: str | None = None
    event_type: str | None = None
    email: str | None = None
    reason: str | None = None


class TransitionResponseSchema(CamelModel):
    success: bool
    changed: bool
    previous_state: Any
    new_state: Any


class AvailableTransitionsSchema(CamelModel):
    current_state: Any
    available_transitions: list[str]


class HistoryEntrySchema(CamelModel):
    booking_id: str
    calendar_event_id: str
    status: str
    changed_by: str
    request_number: int
    note: str | None = None
    timestamp: datetime


class JobErrorSchema(CamelModel):
    tenant: str
    calendar_event_id: str | None = None
    error: str


class JobCandidateSchema(CamelModel):
    tenant: str
    calendar_event_id: str
    end_date: str
    minutes_past_end: int


class JobSummarySchema(CamelModel):
    dry_run: bool = False
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    candidates: list[JobCandidateSchema] = Field(default_factory=list)
    errors: list[JobErrorSchema] = Field(default_factory=list)
