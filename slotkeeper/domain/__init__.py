"""
Domain layer - Pure scheduling logic without external dependencies.
"""

from .conflict_validator import ConflictValidator
from .models import (
    AvailabilityWindow,
    Booking,
    BookingStatus,
    Recurrence,
    SlotInstance,
    SlotRecord,
    SlotRef,
    TimeRange,
    TimeSlot,
    WindowSpec,
)
from .recurrence import RecurrenceExpander

__all__ = [
    "AvailabilityWindow",
    "Booking",
    "BookingStatus",
    "ConflictValidator",
    "Recurrence",
    "RecurrenceExpander",
    "SlotInstance",
    "SlotRecord",
    "SlotRef",
    "TimeRange",
    "TimeSlot",
    "WindowSpec",
]
