from functools import lru_cache
import logging

from app.core.config import settings
from app.infrastructure.store.json_store import JsonBookingStore
from app.infrastructure.store.memory_store import MemoryBookingStore
from app.infrastructure.calendar.google_calendar import GoogleCalendar
from app.infrastructure.calendar.mock_calendar import MockCalendar
from app.infrastructure.email.http_email import HttpEmailSender
from app.infrastructure.email.mock_email import MockEmailSender
from app.application.ports.booking_store import BookingStorePort
from app.application.ports.calendar import CalendarPort
from app.application.ports.email import EmailPort
from app.application.use_cases.auto_checkout import AutoCheckoutUseCase
from app.application.use_cases.dispatch_event import DispatchBookingEventUseCase
from app.application.use_cases.modify_booking import ModifyBookingUseCase
from app.application.use_cases.read_booking import ReadBookingUseCase
from app.application.use_cases.service_action import ServiceActionUseCase
from app.application.use_cases.submit_booking import SubmitBookingUseCase
from app.application.use_cases.sync_calendars import SyncCalendarsUseCase
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.application.utils.locks import KeyedLocks


_booking_store: BookingStorePort | None = None


def get_booking_store() -> BookingStorePort:
    global _booking_store
    if _booking_store is None:
        if settings.STORE_PROVIDER.lower() == "json":
            _booking_store = JsonBookingStore(settings.DATA_DIR)
        else:
            _booking_store = MemoryBookingStore()
    return _booking_store


@lru_cache
def get_locks() -> KeyedLocks:
    return KeyedLocks()


@lru_cache
def get_calendar() -> CalendarPort:
    if not settings.GOOGLE_CALENDAR_ACCESS_TOKEN or settings.is_dev:
        return MockCalendar()
    return GoogleCalendar()


@lru_cache
def get_email_sender() -> EmailPort:
    logger = logging.getLogger(__name__)
    if not settings.EMAIL_ENABLED:
        logger.info("Using MockEmailSender (EMAIL_ENABLED=false)")
        return MockEmailSender()
    return HttpEmailSender()


def get_transition_effects() -> TransitionEffectsUseCase:
    return TransitionEffectsUseCase(
        store=get_booking_store(),
        calendar=get_calendar(),
        email=get_email_sender(),
        title_max_length=settings.CALENDAR_TITLE_MAX_LENGTH,
    )


def get_dispatcher() -> DispatchBookingEventUseCase:
    return DispatchBookingEventUseCase(
        store=get_booking_store(),
        effects=get_transition_effects(),
        locks=get_locks(),
        policy_for=settings.tenant_policy,
    )


def get_service_action_use_case() -> ServiceActionUseCase:
    return ServiceActionUseCase(dispatcher=get_dispatcher())


def get_read_booking_use_case() -> ReadBookingUseCase:
    return ReadBookingUseCase(store=get_booking_store(), policy_for=settings.tenant_policy)


def get_submit_booking_use_case() -> SubmitBookingUseCase:
    return SubmitBookingUseCase(
        store=get_booking_store(),
        calendar=get_calendar(),
        effects=get_transition_effects(),
        policy_for=settings.tenant_policy,
        title_max_length=settings.CALENDAR_TITLE_MAX_LENGTH,
    )


def get_modify_booking_use_case() -> ModifyBookingUseCase:
    return ModifyBookingUseCase(
        store=get_booking_store(),
        calendar=get_calendar(),
        effects=get_transition_effects(),
        locks=get_locks(),
        policy_for=settings.tenant_policy,
        title_max_length=settings.CALENDAR_TITLE_MAX_LENGTH,
    )


def get_auto_checkout_use_case() -> AutoCheckoutUseCase:
    return AutoCheckoutUseCase(
        store=get_booking_store(),
        dispatcher=get_dispatcher(),
        tenants=settings.TENANTS,
        grace_minutes=settings.AUTO_CHECKOUT_GRACE_MINUTES,
        lookback_hours=settings.AUTO_CHECKOUT_LOOKBACK_HOURS,
    )


def get_sync_calendars_use_case() -> SyncCalendarsUseCase:
    return SyncCalendarsUseCase(
        store=get_booking_store(),
        calendar=get_calendar(),
        tenants=settings.TENANTS,
        title_max_length=settings.CALENDAR_TITLE_MAX_LENGTH,
    )
