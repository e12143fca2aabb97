"""
Wiring of the availability store and booking coordinator.

Request handlers, storage adapters and notification senders sit above
this facade; it exposes exactly the inbound operations of the core.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from .adapters.clock import SystemClock
from .adapters.memory_repository import InMemoryRepository
from .config import SchedulerConfig
from .domain.models import AvailabilityWindow, Booking, SlotInstance, SlotRef, TimeRange, WindowSpec
from .services.availability_store import AvailabilityStore
from .services.booking_coordinator import BookingCoordinator
from .services.ports import Clock, SchedulerRepository


@dataclass
class Scheduler:
    """Facade over the store and the coordinator."""
    store: AvailabilityStore
    coordinator: BookingCoordinator

    def create_window(self, provider_id: str, spec: WindowSpec) -> AvailabilityWindow:
        return self.store.create_window(provider_id, spec)

    def update_window(self, window_id: str, spec: WindowSpec) -> AvailabilityWindow:
        return self.store.update_window(window_id, spec)

    def delete_window(self, window_id: str) -> None:
        self.store.delete_window(window_id)

    def list_slots(
        self,
        provider_id: str,
        time_range: Optional[TimeRange] = None,
        only_free: bool = False,
    ) -> Iterator[SlotInstance]:
        return self.store.list_slots(provider_id, time_range, only_free=only_free)

    def reserve(self, slot_ref: SlotRef, holder_id: str) -> Booking:
        return self.coordinator.reserve(slot_ref, holder_id)

    def cancel(self, booking_id: str, requester_id: str) -> Booking:
        return self.coordinator.cancel(booking_id, requester_id)


def build_scheduler(
    config: Optional[SchedulerConfig] = None,
    repository: Optional[SchedulerRepository] = None,
    clock: Optional[Clock] = None,
) -> Scheduler:
    """
    Assemble a scheduler, defaulting to in-memory storage and the system clock.
    """
    config = config or SchedulerConfig()
    repository = repository or InMemoryRepository()
    clock = clock or SystemClock(config.timezone)

    store = AvailabilityStore(repository=repository, clock=clock, config=config)
    coordinator = BookingCoordinator(store=store, repository=repository, clock=clock)
    return Scheduler(store=store, coordinator=coordinator)
