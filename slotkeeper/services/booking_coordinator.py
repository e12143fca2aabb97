"""
Atomic reservation and release of slot instances.

Each slot instance moves FREE -> BOOKED -> FREE. The compare-and-swap on
the slot's (booking_ref, version) record is the only thing standing
between two concurrent reservations of the same slot; no lock is held
across steps, and nothing here retries on conflict.
"""

from __future__ import annotations

import dataclasses
import logging
import uuid
from typing import Callable, List, Optional

from pendulum import Date

from ..domain.exceptions import (
    BookingAlreadyCancelled,
    BookingNotFound,
    CancellationNotPermitted,
    SlotAlreadyBooked,
    SlotInPast,
    SlotStateInconsistent,
)
from ..domain.models import Booking, BookingStatus, SlotRef
from .availability_store import AvailabilityStore
from .ports import Clock, SchedulerRepository

logger = logging.getLogger(__name__)


def _new_booking_id() -> str:
    return uuid.uuid4().hex


class BookingCoordinator:
    """
    Arbitrates concurrent reserve and cancel requests per slot instance.
    """

    def __init__(
        self,
        store: AvailabilityStore,
        repository: SchedulerRepository,
        clock: Clock,
        id_factory: Callable[[], str] = _new_booking_id,
    ) -> None:
        self._store = store
        self._repository = repository
        self._clock = clock
        self._new_id = id_factory

    def reserve(self, slot_ref: SlotRef, holder_id: str) -> Booking:
        """
        Claim a free slot instance for ``holder_id``.

        Recurring occurrences are addressed by ``(window, date, index)`` and
        get their own slot record on first booking; the window template is
        never touched.

        Raises:
            WindowNotFound: If the slot's window does not exist
            InvalidSlotReference: If the ref addresses no occurrence
            SlotInPast: If the slot has already started
            SlotAlreadyBooked: If the slot is taken, including by a
                reservation that won the race after our read
        """
        window, instance = self._store.resolve_slot(slot_ref)

        now = self._clock.now()
        if instance.start <= now:
            raise SlotInPast(f"Slot {slot_ref} started at {instance.start}, now is {now}")

        if instance.is_booked:
            raise SlotAlreadyBooked(f"Slot {slot_ref} is already booked")

        booking_id = self._new_id()
        swapped = self._repository.compare_and_set_slot(
            slot_ref,
            expected_version=instance.version,
            booking_ref=booking_id,
            window_version=window.version,
        )
        if not swapped:
            logger.warning("Reservation of slot %s by %s lost the race", slot_ref, holder_id)
            raise SlotAlreadyBooked(f"Slot {slot_ref} was booked or changed concurrently")

        booking = Booking(
            id=booking_id,
            slot_ref=slot_ref,
            provider_id=window.provider_id,
            holder_id=holder_id,
            created_at=now,
            slot_start=instance.start,
        )
        try:
            self._repository.insert_booking(booking)
        except Exception:
            self._release_after_failed_insert(slot_ref, booking_id, instance.version + 1)
            raise

        logger.info("Booked slot %s for %s (booking %s)", slot_ref, holder_id, booking_id)
        return booking

    def cancel(self, booking_id: str, requester_id: str) -> Booking:
        """
        Cancel an active booking and free its slot instance.

        Only the holder or the owning provider may cancel.

        Raises:
            BookingNotFound: If the booking id is unknown
            CancellationNotPermitted: If the requester may not cancel it
            BookingAlreadyCancelled: If the booking is no longer active;
                callers retrying a cancel may treat this as success
            SlotStateInconsistent: If the slot no longer points at the booking
        """
        booking = self.get_booking(booking_id)

        if requester_id not in (booking.holder_id, booking.provider_id):
            raise CancellationNotPermitted(
                f"{requester_id} may not cancel booking {booking_id}"
            )
        if not booking.is_active:
            raise BookingAlreadyCancelled(booking_id)

        cancelled = dataclasses.replace(
            booking,
            status=BookingStatus.CANCELLED,
            cancelled_at=self._clock.now(),
            version=booking.version + 1,
        )
        if not self._repository.replace_booking(cancelled, expected_version=booking.version):
            raise BookingAlreadyCancelled(booking_id)

        record = self._repository.get_slot_record(booking.slot_ref)
        if record.booking_ref != booking_id:
            self._report_inconsistency(
                booking.slot_ref,
                f"expected booking {booking_id}, slot holds {record.booking_ref!r}",
            )
        if not self._repository.compare_and_set_slot(
            booking.slot_ref,
            expected_version=record.version,
            booking_ref=None,
        ):
            self._report_inconsistency(
                booking.slot_ref,
                f"slot changed while releasing booking {booking_id}",
            )

        logger.info("Cancelled booking %s on slot %s by %s", booking_id, booking.slot_ref, requester_id)
        return cancelled

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    def list_bookings_for_holder(
        self,
        holder_id: str,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        """Return a holder's bookings, latest appointment first."""
        bookings = self._repository.list_bookings(holder_id=holder_id)
        if status is not None:
            bookings = [b for b in bookings if b.status is status]
        return sorted(bookings, key=lambda b: (b.slot_start or b.created_at), reverse=True)

    def list_bookings_for_provider(
        self,
        provider_id: str,
        status: Optional[BookingStatus] = None,
        on_date: Optional[Date] = None,
    ) -> List[Booking]:
        """Return a provider's bookings in appointment order, optionally for one day."""
        bookings = self._repository.list_bookings(provider_id=provider_id)
        if status is not None:
            bookings = [b for b in bookings if b.status is status]
        if on_date is not None:
            bookings = [b for b in bookings if b.slot_ref.occurrence_date == on_date]
        return sorted(bookings, key=lambda b: (b.slot_start or b.created_at))

    def _release_after_failed_insert(self, slot_ref: SlotRef, booking_id: str, version: int) -> None:
        logger.error(
            "Persisting booking %s failed; releasing slot %s", booking_id, slot_ref, exc_info=True
        )
        if not self._repository.compare_and_set_slot(slot_ref, expected_version=version, booking_ref=None):
            logger.error(
                "Could not release slot %s after failed booking %s; slot needs repair",
                slot_ref, booking_id,
            )

    @staticmethod
    def _report_inconsistency(slot_ref: SlotRef, detail: str) -> None:
        logger.error("Slot state invariant violated on %s: %s", slot_ref, detail)
        raise SlotStateInconsistent(f"Slot {slot_ref}: {detail}")
