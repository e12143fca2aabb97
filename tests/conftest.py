"""
Shared fixtures for scheduler tests.
"""

from collections import Counter
from typing import Iterable

import pendulum
import pytest

from slotkeeper.adapters.clock import FixedClock
from slotkeeper.adapters.memory_repository import InMemoryRepository
from slotkeeper.scheduler import build_scheduler


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(pendulum.parse("2025-10-01 00:00", tz="UTC"))


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def scheduler(repository, clock):
    return build_scheduler(repository=repository, clock=clock)


@pytest.fixture
def check_invariant(repository):
    """
    Return a checker asserting booking_ref != None iff exactly one active
    booking points at that slot instance.
    """

    def _check(provider_ids: Iterable[str]) -> None:
        for provider_id in provider_ids:
            active = [
                b for b in repository.list_bookings(provider_id=provider_id) if b.is_active
            ]
            per_slot = Counter(b.slot_ref for b in active)
            assert all(count == 1 for count in per_slot.values()), per_slot

            booked_refs = {}
            for window in repository.list_windows(provider_id):
                for ref, record in repository.list_slot_records(window.id).items():
                    if record.is_booked:
                        booked_refs[ref] = record.booking_ref

            assert booked_refs == {b.slot_ref: b.id for b in active}

    return _check
