"""
Service layer that orchestrates storage ports and domain logic.
"""

from .availability_store import AvailabilityStore
from .booking_coordinator import BookingCoordinator
from .ports import Clock, SchedulerRepository

__all__ = ["AvailabilityStore", "BookingCoordinator", "Clock", "SchedulerRepository"]
