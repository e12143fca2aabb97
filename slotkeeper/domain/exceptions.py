"""
Domain-specific exception hierarchy for the scheduler.

Everything deriving from ``SchedulingConflict`` is an expected business
outcome and is surfaced to the caller unchanged. ``SlotStateInconsistent``
signals a broken invariant and must never be reported as a normal conflict.
"""

from typing import List, Sequence


class SchedulerError(Exception):
    """Base class for all scheduler errors."""


class SchedulingConflict(SchedulerError):
    """Base class for expected, user-reportable outcomes."""


class InvalidWindowSpec(SchedulingConflict):
    """Raised when a window definition violates the slot rules."""

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors) or "invalid window specification")


class WindowNotFound(SchedulingConflict):
    """Raised when a window id does not resolve to a stored window."""

    def __init__(self, window_id: str):
        self.window_id = window_id
        super().__init__(f"Availability window not found: {window_id}")


class WindowHasActiveBookings(SchedulingConflict):
    """Raised when an update or delete would orphan a confirmed booking."""

    def __init__(self, window_id: str, detail: str = ""):
        self.window_id = window_id
        message = f"Availability window {window_id} has active bookings"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class SlotAlreadyBooked(SchedulingConflict):
    """Raised when a reservation loses to an existing or concurrent booking."""


class SlotInPast(SchedulingConflict):
    """Raised when reserving a slot that has already started."""


class InvalidSlotReference(SchedulingConflict):
    """Raised when a slot reference does not address an occurrence of its window."""


class BookingNotFound(SchedulingConflict):
    """Raised when a booking id is unknown."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking not found: {booking_id}")


class BookingAlreadyCancelled(SchedulingConflict):
    """Raised when cancelling a booking that is no longer active."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__(f"Booking already cancelled: {booking_id}")


class CancellationNotPermitted(SchedulingConflict):
    """Raised when the requester is neither the holder nor the owning provider."""


class WindowModifiedConcurrently(SchedulingConflict):
    """Raised when a window update or delete loses a race without being blocked by a booking."""


class SlotStateInconsistent(SchedulerError):
    """Raised when a slot's booking reference contradicts the booking records."""
