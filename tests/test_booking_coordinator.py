"""
Tests for reservation and cancellation.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor

import pendulum
import pytest

from slotkeeper.adapters.memory_repository import InMemoryRepository
from slotkeeper.domain.exceptions import (
    BookingAlreadyCancelled,
    BookingNotFound,
    CancellationNotPermitted,
    InvalidSlotReference,
    SchedulingConflict,
    SlotAlreadyBooked,
    SlotInPast,
    SlotStateInconsistent,
    WindowNotFound,
)
from slotkeeper.domain.models import BookingStatus, Recurrence, SlotRef, TimeRange, WindowSpec
from slotkeeper.scheduler import build_scheduler


def _day(date: str) -> TimeRange:
    start = pendulum.parse(f"{date} 00:00", tz="UTC")
    return TimeRange(start=start, end=start.add(days=1))


def _single_slot_window(scheduler, provider_id: str = "dr-1"):
    window = scheduler.create_window(provider_id, WindowSpec.from_times("2025-10-22", [("08:00", "09:00")]))
    return window, window.slot_ref(window.anchor_date, 0)


class RacingRepository(InMemoryRepository):
    """Runs a callback once, just before the next slot compare-and-swap."""

    def __init__(self):
        super().__init__()
        self.before_cas = None

    def compare_and_set_slot(self, ref, expected_version, booking_ref, window_version=None):
        hook, self.before_cas = self.before_cas, None
        if hook:
            hook()
        return super().compare_and_set_slot(ref, expected_version, booking_ref, window_version)


class FailingBookingRepository(InMemoryRepository):
    """Repository whose booking writes fail."""

    def insert_booking(self, booking):
        raise RuntimeError("booking table unavailable")


class TestReserve:
    """Tests for BookingCoordinator.reserve."""

    def test_book_cancel_rebook_scenario(self, scheduler, check_invariant):
        """A books, B is refused, A cancels, B books."""
        window, ref = _single_slot_window(scheduler)

        booking_a = scheduler.reserve(ref, "patient-a")
        [slot] = scheduler.list_slots("dr-1", _day("2025-10-22"))
        assert slot.is_booked
        assert slot.booking_ref == booking_a.id

        with pytest.raises(SlotAlreadyBooked):
            scheduler.reserve(ref, "patient-b")

        scheduler.cancel(booking_a.id, "patient-a")
        [slot] = scheduler.list_slots("dr-1", _day("2025-10-22"))
        assert not slot.is_booked

        booking_b = scheduler.reserve(ref, "patient-b")
        assert booking_b.holder_id == "patient-b"
        assert booking_b.status is BookingStatus.ACTIVE
        assert booking_b.provider_id == "dr-1"
        check_invariant(["dr-1"])

    def test_past_slot_rejected(self, scheduler, clock):
        _, ref = _single_slot_window(scheduler)
        clock.advance(days=21, hours=8)

        with pytest.raises(SlotInPast):
            scheduler.reserve(ref, "patient-a")

    def test_unknown_window_and_bad_ref(self, scheduler):
        window, _ = _single_slot_window(scheduler)

        with pytest.raises(WindowNotFound):
            scheduler.reserve(SlotRef("missing", window.anchor_date, 0), "patient-a")
        with pytest.raises(InvalidSlotReference):
            scheduler.reserve(SlotRef(window.id, window.anchor_date, 3), "patient-a")

    def test_recurring_occurrences_are_booked_independently(self, scheduler, repository, check_invariant):
        window = scheduler.create_window(
            "dr-1", WindowSpec.from_times("2025-10-20", [("08:00", "09:00")], Recurrence.WEEKLY)
        )
        first = window.slot_ref(pendulum.date(2025, 10, 20), 0)
        second = window.slot_ref(pendulum.date(2025, 10, 27), 0)

        booking = scheduler.reserve(second, "patient-a")

        assert booking.slot_start == pendulum.parse("2025-10-27 08:00", tz="UTC")
        assert repository.get_slot_record(second).is_booked
        assert not repository.get_slot_record(first).is_booked
        assert scheduler.store.get_window(window.id) == window
        scheduler.reserve(first, "patient-b")
        check_invariant(["dr-1"])

    def test_concurrent_reservations_have_exactly_one_winner(self, scheduler, check_invariant):
        _, ref = _single_slot_window(scheduler)
        attempts = 16
        barrier = threading.Barrier(attempts)

        def attempt(index):
            barrier.wait()
            try:
                return scheduler.reserve(ref, f"patient-{index}")
            except SlotAlreadyBooked as exc:
                return exc

        with ThreadPoolExecutor(max_workers=attempts) as pool:
            results = list(pool.map(attempt, range(attempts)))

        winners = [r for r in results if not isinstance(r, SlotAlreadyBooked)]
        assert len(winners) == 1
        assert sum(isinstance(r, SlotAlreadyBooked) for r in results) == attempts - 1
        check_invariant(["dr-1"])

    def test_different_slots_do_not_interfere(self, scheduler, check_invariant):
        window = scheduler.create_window(
            "dr-1",
            WindowSpec.from_times("2025-10-22", [("08:00", "09:00"), ("09:00", "10:00"), ("10:00", "11:00")]),
        )
        refs = [window.slot_ref(window.anchor_date, i) for i in range(3)]
        barrier = threading.Barrier(len(refs))

        def attempt(index):
            barrier.wait()
            return scheduler.reserve(refs[index], f"patient-{index}")

        with ThreadPoolExecutor(max_workers=len(refs)) as pool:
            bookings = list(pool.map(attempt, range(len(refs))))

        assert {b.slot_ref for b in bookings} == set(refs)
        check_invariant(["dr-1"])

    def test_loser_of_interleaved_race_gets_slot_already_booked(self, clock, check_invariant):
        repository = RacingRepository()
        scheduler = build_scheduler(repository=repository, clock=clock)
        _, ref = _single_slot_window(scheduler)
        repository.before_cas = lambda: scheduler.reserve(ref, "patient-b")

        with pytest.raises(SlotAlreadyBooked):
            scheduler.reserve(ref, "patient-a")

        [booking] = repository.list_bookings(provider_id="dr-1")
        assert booking.holder_id == "patient-b"
        assert repository.get_slot_record(ref).version == 1

    def test_reservation_fails_if_window_changed_before_commit(self, clock):
        repository = RacingRepository()
        scheduler = build_scheduler(repository=repository, clock=clock)
        window, ref = _single_slot_window(scheduler)
        repository.before_cas = lambda: scheduler.update_window(
            window.id, WindowSpec.from_times("2025-10-22", [("12:00", "13:00")])
        )

        with pytest.raises(SlotAlreadyBooked):
            scheduler.reserve(ref, "patient-a")

        assert not repository.get_slot_record(ref).is_booked
        assert repository.list_bookings(provider_id="dr-1") == []

    def test_failed_booking_write_releases_slot(self, clock):
        repository = FailingBookingRepository()
        scheduler = build_scheduler(repository=repository, clock=clock)
        _, ref = _single_slot_window(scheduler)

        with pytest.raises(RuntimeError, match="booking table unavailable"):
            scheduler.reserve(ref, "patient-a")

        record = repository.get_slot_record(ref)
        assert not record.is_booked
        assert record.version == 2


class TestCancel:
    """Tests for BookingCoordinator.cancel."""

    def test_round_trip_restores_free_state(self, scheduler, repository):
        _, ref = _single_slot_window(scheduler)
        [before] = scheduler.list_slots("dr-1", _day("2025-10-22"))

        booking = scheduler.reserve(ref, "patient-a")
        cancelled = scheduler.cancel(booking.id, "patient-a")
        [after] = scheduler.list_slots("dr-1", _day("2025-10-22"))

        assert cancelled.status is BookingStatus.CANCELLED
        assert cancelled.cancelled_at is not None
        assert (after.ref, after.start, after.end, after.booking_ref) == (
            before.ref, before.start, before.end, before.booking_ref,
        )
        assert after.version == before.version + 2

    def test_second_cancel_is_signalled_and_changes_nothing(self, scheduler, repository):
        _, ref = _single_slot_window(scheduler)
        booking = scheduler.reserve(ref, "patient-a")
        scheduler.cancel(booking.id, "patient-a")
        record = repository.get_slot_record(ref)

        with pytest.raises(BookingAlreadyCancelled):
            scheduler.cancel(booking.id, "patient-a")

        assert repository.get_slot_record(ref) == record

    def test_unknown_booking(self, scheduler):
        with pytest.raises(BookingNotFound):
            scheduler.cancel("missing", "patient-a")

    def test_only_holder_or_provider_may_cancel(self, scheduler):
        _, ref = _single_slot_window(scheduler)
        booking = scheduler.reserve(ref, "patient-a")

        with pytest.raises(CancellationNotPermitted):
            scheduler.cancel(booking.id, "patient-b")

        cancelled = scheduler.cancel(booking.id, "dr-1")
        assert cancelled.status is BookingStatus.CANCELLED

    def test_inconsistent_slot_is_logged_and_not_a_conflict(self, scheduler, repository, caplog):
        _, ref = _single_slot_window(scheduler)
        booking = scheduler.reserve(ref, "patient-a")
        record = repository.get_slot_record(ref)
        repository.compare_and_set_slot(ref, record.version, "rogue-booking")

        with caplog.at_level(logging.ERROR, logger="slotkeeper"):
            with pytest.raises(SlotStateInconsistent) as exc_info:
                scheduler.cancel(booking.id, "patient-a")

        assert not isinstance(exc_info.value, SchedulingConflict)
        assert "invariant violated" in caplog.text


class TestBookingQueries:
    """Tests for booking listings."""

    def test_holder_and_provider_listings(self, scheduler):
        window = scheduler.create_window(
            "dr-1", WindowSpec.from_times("2025-10-20", [("08:00", "09:00")], Recurrence.DAILY)
        )
        early = scheduler.reserve(window.slot_ref(pendulum.date(2025, 10, 20), 0), "patient-a")
        late = scheduler.reserve(window.slot_ref(pendulum.date(2025, 10, 22), 0), "patient-a")
        other = scheduler.reserve(window.slot_ref(pendulum.date(2025, 10, 21), 0), "patient-b")
        scheduler.cancel(early.id, "patient-a")

        coordinator = scheduler.coordinator
        assert [b.id for b in coordinator.list_bookings_for_holder("patient-a")] == [late.id, early.id]
        assert [b.id for b in coordinator.list_bookings_for_holder("patient-a", BookingStatus.ACTIVE)] == [late.id]
        assert [b.id for b in coordinator.list_bookings_for_provider("dr-1")] == [early.id, other.id, late.id]
        assert [
            b.id for b in coordinator.list_bookings_for_provider("dr-1", on_date=pendulum.date(2025, 10, 21))
        ] == [other.id]
        assert coordinator.get_booking(late.id) == late


class TestInvariantUnderMixedOperations:
    """The booking reference invariant holds after arbitrary sequences."""

    def test_sequence_of_operations(self, scheduler, check_invariant):
        one_off = scheduler.create_window(
            "dr-1", WindowSpec.from_times("2025-10-22", [("08:00", "09:00"), ("09:00", "10:00")])
        )
        weekly = scheduler.create_window(
            "dr-1", WindowSpec.from_times("2025-10-20", [("14:00", "15:00")], Recurrence.WEEKLY)
        )

        b1 = scheduler.reserve(one_off.slot_ref(one_off.anchor_date, 0), "p1")
        check_invariant(["dr-1"])
        b2 = scheduler.reserve(weekly.slot_ref(pendulum.date(2025, 11, 3), 0), "p2")
        with pytest.raises(SlotAlreadyBooked):
            scheduler.reserve(weekly.slot_ref(pendulum.date(2025, 11, 3), 0), "p3")
        check_invariant(["dr-1"])
        scheduler.cancel(b1.id, "p1")
        with pytest.raises(BookingAlreadyCancelled):
            scheduler.cancel(b1.id, "p1")
        check_invariant(["dr-1"])
        scheduler.update_window(
            one_off.id, WindowSpec.from_times("2025-10-22", [("11:00", "12:00")])
        )
        scheduler.reserve(one_off.slot_ref(one_off.anchor_date, 0), "p3")
        scheduler.cancel(b2.id, "dr-1")
        scheduler.delete_window(weekly.id)
        check_invariant(["dr-1"])
