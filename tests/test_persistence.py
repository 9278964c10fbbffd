"""
Tests for durable booking persistence.
"""

from __future__ import annotations

import json
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from app.application.ports.booking_store import DELETE_FIELD, BookingQuery
from app.application.use_cases.transition_effects import TransitionEffectsUseCase
from app.domain.entities.booking import Booking
from app.domain.entities.events import parse_event
from app.domain.entities.history import HistoryLogEntry
from app.domain.entities.services import ServiceCategory
from app.domain.entities.snapshot import MachineState, SelectedRoom, Snapshot
from app.domain.entities.tenant_policy import TenantPolicy
from app.domain.machine.booking_machine import BookingMachine
from app.domain.machine.rehydration import context_from_booking
from app.infrastructure.calendar.mock_calendar import MockCalendar
from app.infrastructure.email.mock_email import MockEmailSender
from app.infrastructure.store.json_store import JsonBookingStore
from app.infrastructure.store.memory_store import MemoryBookingStore


START = datetime(2025, 3, 10, 13, 0, tzinfo=timezone.utc)


def make_booking(booking_id: str = "b1", calendar_event_id: str = "evt-1", end: datetime | None = None) -> Booking:
    end = end or START + timedelta(hours=1)
    booking = Booking(
        booking_id=booking_id,
        tenant="mc",
        calendar_event_id=calendar_event_id,
        request_number=1,
        email="requester@nyu.edu",
        title="Seminar",
        start_date=START,
        end_date=end,
        selected_rooms=(SelectedRoom(room_id=202, calendar_id="cal-202"),),
        services_requested={ServiceCategory.STAFF: True},
        first_approved_at=START,
        first_approved_by="admin@nyu.edu",
        status="PRE-APPROVED",
    )
    return replace(booking, xstate_data=Snapshot(value=MachineState.PRE_APPROVED, context=context_from_booking(booking)))


def test_json_store_persistence():
    """Test that a saved booking reads back identically from a fresh store."""
    with tempfile.TemporaryDirectory() as tmpdir:
        JsonBookingStore(data_dir=tmpdir).save(make_booking())

        # Simulate restart
        retrieved = JsonBookingStore(data_dir=tmpdir).get("mc", "b1")

        assert retrieved is not None
        assert retrieved.calendar_event_id == "evt-1"
        assert retrieved.first_approved_at == START
        assert retrieved.services_requested == {ServiceCategory.STAFF: True}
        assert retrieved.xstate_data.value is MachineState.PRE_APPROVED

        file_path = Path(tmpdir) / "mc" / "b1.json"
        assert file_path.exists()
        with open(file_path, "r", encoding="utf-8") as f:
            doc = json.load(f)
        assert doc["xstateData"]["value"] == "Pre-approved"
        assert doc["roomId"] == "202"


def test_update_fields_deletes_sentinel_keys():
    """Test that DELETE_FIELD removes keys from the stored document."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        store.save(make_booking())

        updated = store.update_fields(
            "mc", "b1", {"firstApprovedAt": DELETE_FIELD, "firstApprovedBy": DELETE_FIELD, "title": "Renamed"}
        )

        assert updated.first_approved_at is None
        assert updated.title == "Renamed"
        raw = store.raw("mc", "b1")
        assert "firstApprovedAt" not in raw
        assert "firstApprovedBy" not in raw


def test_update_missing_booking_raises():
    with tempfile.TemporaryDirectory() as tmpdir:
        with pytest.raises(KeyError):
            JsonBookingStore(data_dir=tmpdir).update_fields("mc", "ghost", {"title": "x"})


def test_lookup_by_calendar_event_id_and_tenant_isolation():
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        store.save(make_booking())

        assert store.get_by_calendar_event_id("mc", "evt-1").booking_id == "b1"
        assert store.get_by_calendar_event_id("itp", "evt-1") is None
        assert store.get_by_calendar_event_id("mc", "evt-2") is None


def test_history_is_ordered_by_timestamp():
    """Test that history entries come back oldest first, ties in insertion order."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)

        def entry(status: str, minutes: int) -> HistoryLogEntry:
            return HistoryLogEntry(
                booking_id="b1",
                calendar_event_id="evt-1",
                status=status,
                changed_by="admin@nyu.edu",
                request_number=1,
                timestamp=START + timedelta(minutes=minutes),
                tenant="mc",
            )

        store.append_log(entry("APPROVED", 5))
        store.append_log(entry("REQUESTED", 0))
        store.append_log(entry("PRE-APPROVED", 5))

        statuses = [e.status for e in JsonBookingStore(data_dir=tmpdir).list_logs("mc", "b1")]
        assert statuses == ["REQUESTED", "APPROVED", "PRE-APPROVED"]


def test_request_numbers_survive_restart():
    with tempfile.TemporaryDirectory() as tmpdir:
        assert JsonBookingStore(data_dir=tmpdir).next_request_number("mc") == 1
        assert JsonBookingStore(data_dir=tmpdir).next_request_number("mc") == 2
        assert JsonBookingStore(data_dir=tmpdir).next_request_number("itp") == 1


@pytest.fixture(params=["memory", "json"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryBookingStore()
    return JsonBookingStore(data_dir=str(tmp_path))


def test_query_filters_on_end_date(any_store):
    any_store.save(make_booking("early", "evt-early", end=START))
    any_store.save(make_booking("late", "evt-late", end=START + timedelta(hours=5)))

    found = any_store.query("mc", BookingQuery(end_after=START + timedelta(hours=1), end_before=START + timedelta(hours=6)))

    assert [b.booking_id for b in found] == ["late"]
    assert len(any_store.query("mc", BookingQuery())) == 2


def test_transition_survives_restart():
    """Test that a transition written through the executor is read back after a restart."""
    with tempfile.TemporaryDirectory() as tmpdir:
        store = JsonBookingStore(data_dir=tmpdir)
        booking = make_booking()
        store.save(booking)
        effects = TransitionEffectsUseCase(
            store=store, calendar=MockCalendar(), email=MockEmailSender(), clock=lambda: START
        )
        machine = BookingMachine(TenantPolicy(tenant="mc"))

        result = machine.transition(booking.xstate_data, parse_event("approve", email="admin@nyu.edu"))
        effects.apply(booking, result, "admin@nyu.edu")

        reloaded = JsonBookingStore(data_dir=tmpdir).get_by_calendar_event_id("mc", "evt-1")
        assert reloaded.xstate_data.state_value == {"Services Request": {"staff": "Requested"}}
        assert reloaded.status == "PRE-APPROVED"
        assert JsonBookingStore(data_dir=tmpdir).list_logs("mc", "b1") == []


def test_memory_store_serves_lookups_while_other_threads_save():
    store = MemoryBookingStore()
    errors: list[Exception] = []

    def writer():
        for i in range(300):
            store.save(make_booking(f"b{i}", f"evt-{i}"))

    def reader():
        for _ in range(300):
            try:
                store.get_by_calendar_event_id("mc", "missing")
                store.query("mc", BookingQuery())
            except Exception as e:
                errors.append(e)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert len(store.query("mc", BookingQuery())) == 300


def test_request_numbers_are_unique_across_threads():
    store = MemoryBookingStore()

    with ThreadPoolExecutor(max_workers=8) as pool:
        numbers = list(pool.map(lambda _: store.next_request_number("mc"), range(200)))

    assert sorted(numbers) == list(range(1, 201))
