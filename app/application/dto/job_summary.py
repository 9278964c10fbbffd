from __future__ import annotations

from pydantic import BaseModel, Field


class JobError(BaseModel):
    tenant: str
    calendar_event_id: str | None = None
    error: str


class JobCandidate(BaseModel):
    tenant: str
    calendar_event_id: str
    end_date: str
    minutes_past_end: int


class JobSummary(BaseModel):
    """Outcome of a batch job run across tenants."""

    dry_run: bool = False
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    candidates: list[JobCandidate] = Field(default_factory=list)
    errors: list[JobError] = Field(default_factory=list)

    def record_error(self, tenant: str, error: Exception, calendar_event_id: str | None = None) -> None:
        self.failed += 1
        self.errors.append(JobError(tenant=tenant, calendar_event_id=calendar_event_id, error=str(error)))
