"""
In-memory implementation of the scheduler repository.

Each conditional write runs under one short internal lock, which plays
the role of a database's single-row conditional UPDATE. The lock is never
held across service calls, so it gives the services no broader exclusion
than a real store would.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Mapping, Optional

from ..domain.models import FREE_SLOT, AvailabilityWindow, Booking, SlotRecord, SlotRef


class InMemoryRepository:
    """Thread-safe dictionary store. Records are immutable dataclasses."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._windows: Dict[str, AvailabilityWindow] = {}
        self._slots: Dict[str, Dict[SlotRef, SlotRecord]] = {}
        self._bookings: Dict[str, Booking] = {}

    # Windows

    def get_window(self, window_id: str) -> Optional[AvailabilityWindow]:
        with self._lock:
            return self._windows.get(window_id)

    def list_windows(self, provider_id: str) -> List[AvailabilityWindow]:
        with self._lock:
            return [w for w in self._windows.values() if w.provider_id == provider_id]

    def insert_window(self, window: AvailabilityWindow) -> None:
        with self._lock:
            if window.id in self._windows:
                raise ValueError(f"Window id already exists: {window.id}")
            self._windows[window.id] = window
            self._slots[window.id] = {}

    def replace_window(
        self,
        window: AvailabilityWindow,
        expected_version: int,
        expected_slots: Mapping[SlotRef, int],
    ) -> bool:
        with self._lock:
            if not self._window_unchanged(window.id, expected_version, expected_slots):
                return False
            self._windows[window.id] = window
            return True

    def remove_window(
        self,
        window_id: str,
        expected_version: int,
        expected_slots: Mapping[SlotRef, int],
    ) -> bool:
        with self._lock:
            if not self._window_unchanged(window_id, expected_version, expected_slots):
                return False
            del self._windows[window_id]
            self._slots.pop(window_id, None)
            return True

    def _window_unchanged(
        self,
        window_id: str,
        expected_version: int,
        expected_slots: Mapping[SlotRef, int],
    ) -> bool:
        # Caller holds the lock
        current = self._windows.get(window_id)
        if current is None or current.version != expected_version:
            return False
        records = self._slots.get(window_id, {})
        versions = {ref: record.version for ref, record in records.items()}
        return versions == dict(expected_slots)

    # Slot records

    def get_slot_record(self, ref: SlotRef) -> SlotRecord:
        with self._lock:
            return self._slots.get(ref.window_id, {}).get(ref, FREE_SLOT)

    def list_slot_records(self, window_id: str) -> Dict[SlotRef, SlotRecord]:
        with self._lock:
            return dict(self._slots.get(window_id, {}))

    def compare_and_set_slot(
        self,
        ref: SlotRef,
        expected_version: int,
        booking_ref: Optional[str],
        window_version: Optional[int] = None,
    ) -> bool:
        with self._lock:
            window = self._windows.get(ref.window_id)
            if window is None:
                return False
            if window_version is not None and window.version != window_version:
                return False

            records = self._slots.setdefault(ref.window_id, {})
            current = records.get(ref, FREE_SLOT)
            if current.version != expected_version:
                return False

            records[ref] = SlotRecord(booking_ref=booking_ref, version=expected_version + 1)
            return True

    # Bookings

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    def insert_booking(self, booking: Booking) -> None:
        with self._lock:
            if booking.id in self._bookings:
                raise ValueError(f"Booking id already exists: {booking.id}")
            self._bookings[booking.id] = booking

    def replace_booking(self, booking: Booking, expected_version: int) -> bool:
        with self._lock:
            current = self._bookings.get(booking.id)
            if current is None or current.version != expected_version:
                return False
            self._bookings[booking.id] = booking
            return True

    def list_bookings(
        self,
        *,
        holder_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Booking]:
        with self._lock:
            bookings = list(self._bookings.values())

        if holder_id is not None:
            bookings = [b for b in bookings if b.holder_id == holder_id]
        if provider_id is not None:
            bookings = [b for b in bookings if b.provider_id == provider_id]
        return bookings
