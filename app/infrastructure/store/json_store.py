from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Mapping

from app.application.ports.booking_store import DELETE_FIELD, BookingQuery, BookingStorePort
from app.domain.entities.booking import Booking, booking_from_document, booking_to_document
from app.domain.entities.history import HistoryLogEntry, entry_from_document, entry_to_document
from app.domain.entities.snapshot import parse_datetime


LOGS_FILE = "_logs.json"
COUNTER_FILE = "_counter.json"


class JsonBookingStore(BookingStorePort):
    """One JSON document per booking under `<data_dir>/<tenant>/<bookingId>.json`."""

    def __init__(self, data_dir: str = "./data/bookings") -> None:
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._locks: dict[str, threading.Lock] = {}
        self._lock_lock = threading.Lock()  # Lock for managing locks dict
        self._logger = logging.getLogger(__name__)

    def _get_lock(self, key: str) -> threading.Lock:
        """Get or create a lock for a file key."""
        with self._lock_lock:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def _tenant_dir(self, tenant: str) -> Path:
        path = self._data_dir / tenant
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _get_file_path(self, tenant: str, booking_id: str) -> Path:
        return self._tenant_dir(tenant) / f"{booking_id}.json"

    def _load(self, file_path: Path, default: Any) -> Any:
        if not file_path.exists():
            return default
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            self._logger.error("Unreadable store file", extra={"path": str(file_path), "error": str(e)})
            raise

    def _save(self, file_path: Path, data: Any) -> None:
        """Save data to JSON file atomically."""
        temp_path = file_path.with_suffix(".json.tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
            # Atomic rename
            temp_path.replace(file_path)
        except Exception:
            if temp_path.exists():
                temp_path.unlink()
            raise

    def raw(self, tenant: str, booking_id: str) -> dict[str, Any] | None:
        with self._get_lock(f"{tenant}/{booking_id}"):
            return self._load(self._get_file_path(tenant, booking_id), None)

    def get(self, tenant: str, booking_id: str) -> Booking | None:
        doc = self.raw(tenant, booking_id)
        return booking_from_document(doc) if doc is not None else None

    def get_by_calendar_event_id(self, tenant: str, calendar_event_id: str) -> Booking | None:
        for doc in self._documents(tenant):
            if doc.get("calendarEventId") == calendar_event_id:
                return booking_from_document(doc)
        return None

    def save(self, booking: Booking) -> None:
        with self._get_lock(f"{booking.tenant}/{booking.booking_id}"):
            self._save(self._get_file_path(booking.tenant, booking.booking_id), booking_to_document(booking))

    def update_fields(self, tenant: str, booking_id: str, updates: Mapping[str, Any]) -> Booking:
        file_path = self._get_file_path(tenant, booking_id)
        with self._get_lock(f"{tenant}/{booking_id}"):
            doc = self._load(file_path, None)
            if doc is None:
                raise KeyError(booking_id)
            for key, value in updates.items():
                if value is DELETE_FIELD:
                    doc.pop(key, None)
                else:
                    doc[key] = value
            self._save(file_path, doc)
        return booking_from_document(doc)

    def append_log(self, entry: HistoryLogEntry) -> None:
        file_path = self._tenant_dir(entry.tenant) / LOGS_FILE
        with self._get_lock(f"{entry.tenant}/{LOGS_FILE}"):
            logs = self._load(file_path, [])
            logs.append(entry_to_document(entry))
            self._save(file_path, logs)

    def list_logs(self, tenant: str, booking_id: str) -> list[HistoryLogEntry]:
        file_path = self._tenant_dir(tenant) / LOGS_FILE
        with self._get_lock(f"{tenant}/{LOGS_FILE}"):
            logs = self._load(file_path, [])
        entries = [doc for doc in logs if doc["bookingId"] == booking_id]
        entries.sort(key=lambda doc: parse_datetime(doc["timestamp"]))
        return [entry_from_document(doc) for doc in entries]

    def query(self, tenant: str, query: BookingQuery) -> list[Booking]:
        bookings = [booking_from_document(doc) for doc in self._documents(tenant)]
        return [b for b in bookings if query.matches(b)]

    def next_request_number(self, tenant: str) -> int:
        file_path = self._tenant_dir(tenant) / COUNTER_FILE
        with self._get_lock(f"{tenant}/{COUNTER_FILE}"):
            counter = self._load(file_path, {"requestNumber": 0})
            counter["requestNumber"] = int(counter.get("requestNumber", 0)) + 1
            self._save(file_path, counter)
            return counter["requestNumber"]

    def _documents(self, tenant: str) -> list[dict[str, Any]]:
        docs = []
        for file_path in sorted(self._tenant_dir(tenant).glob("*.json")):
            if file_path.name.startswith("_"):
                continue
            with self._get_lock(f"{tenant}/{file_path.stem}"):
                docs.append(self._load(file_path, None))
        return [doc for doc in docs if doc is not None]
