"""
Outbound ports consumed by the scheduler services.

The services depend on these protocols only, so the in-memory adapter used
in tests and a database-backed adapter are interchangeable.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Protocol

from pendulum import DateTime

from ..domain.models import AvailabilityWindow, Booking, SlotRecord, SlotRef


class Clock(Protocol):
    """Source of the current instant."""

    def now(self) -> DateTime:
        """Return the current timezone-aware instant."""


class SchedulerRepository(Protocol):
    """
    Persistence primitives with version-checked writes.

    Every method that returns ``bool`` is a conditional write: it commits
    atomically when its preconditions hold and returns False otherwise,
    leaving storage untouched.
    """

    def get_window(self, window_id: str) -> Optional[AvailabilityWindow]:
        """Return the stored window or None."""

    def list_windows(self, provider_id: str) -> List[AvailabilityWindow]:
        """Return all windows owned by a provider."""

    def insert_window(self, window: AvailabilityWindow) -> None:
        """Store a new window. Raises ValueError if the id is taken."""

    def replace_window(
        self,
        window: AvailabilityWindow,
        expected_version: int,
        expected_slots: Mapping[SlotRef, int],
    ) -> bool:
        """
        Replace a window if its stored version is ``expected_version`` and
        its materialised slot records still have exactly the versions in
        ``expected_slots``.
        """

    def remove_window(
        self,
        window_id: str,
        expected_version: int,
        expected_slots: Mapping[SlotRef, int],
    ) -> bool:
        """Delete a window and its slot records under the same conditions."""

    def get_slot_record(self, ref: SlotRef) -> SlotRecord:
        """Return the slot's record; unmaterialised slots are free at version 0."""

    def list_slot_records(self, window_id: str) -> Dict[SlotRef, SlotRecord]:
        """Return every materialised slot record of a window."""

    def compare_and_set_slot(
        self,
        ref: SlotRef,
        expected_version: int,
        booking_ref: Optional[str],
        window_version: Optional[int] = None,
    ) -> bool:
        """
        Write ``booking_ref`` and bump the slot version if the slot is still
        at ``expected_version`` (and, when given, its window is still at
        ``window_version``).
        """

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        """Return the stored booking or None."""

    def insert_booking(self, booking: Booking) -> None:
        """Store a new booking. Raises ValueError if the id is taken."""

    def replace_booking(self, booking: Booking, expected_version: int) -> bool:
        """Replace a booking if its stored version is ``expected_version``."""

    def list_bookings(
        self,
        *,
        holder_id: Optional[str] = None,
        provider_id: Optional[str] = None,
    ) -> List[Booking]:
        """Return bookings filtered by holder and/or provider."""
