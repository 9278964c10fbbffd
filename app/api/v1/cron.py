from fastapi import APIRouter, Depends, Query

from app.api.v1.auth import require_cron
from app.api.v1.schemas import JobSummarySchema
from app.application.use_cases.auto_checkout import AutoCheckoutUseCase
from app.application.use_cases.sync_calendars import SyncCalendarsUseCase
from app.wiring.dependencies import get_auto_checkout_use_case, get_sync_calendars_use_case

router = APIRouter(dependencies=[Depends(require_cron)])


@router.get("/bookings/auto-checkout", response_model=JobSummarySchema)
def auto_checkout(
    dry_run: bool = Query(False, alias="dryRun"),
    uc: AutoCheckoutUseCase = Depends(get_auto_checkout_use_case),
):
    summary = uc.execute(dry_run=dry_run)
    return JobSummarySchema.model_validate(summary.model_dump())


@router.get("/syncCalendars", response_model=JobSummarySchema)
def sync_calendars(uc: SyncCalendarsUseCase = Depends(get_sync_calendars_use_case)):
    summary = uc.execute()
    return JobSummarySchema.model_validate(summary.model_dump())
