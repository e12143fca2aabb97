"""
Domain models for availability windows, slot instances and bookings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

import pendulum
from pendulum import Date, DateTime


class Recurrence(str, Enum):
    """Rule by which a window repeats across dates."""
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class BookingStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must be before end.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Start time {self.start} must be before end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another."""
        return self.start < other.end and self.end > other.start

    def contains_instant(self, instant: DateTime) -> bool:
        """Check if an instant falls inside the half-open range."""
        return self.start <= instant < self.end

    def __str__(self) -> str:
        return f"{self.start.format('DD.MM.YYYY HH:mm')} - {self.end.format('DD.MM.YYYY HH:mm')}"


@dataclass(frozen=True)
class TimeSlot:
    """
    A template slot inside an availability window.

    Deliberately unchecked on construction: the ConflictValidator reports
    every problem of a window at once.
    """
    start: DateTime
    end: DateTime

    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.start < other.end and self.end > other.start

    def shifted(self, days: int) -> "TimeSlot":
        """
        Move the slot by whole calendar days.

        Pendulum adds days on the local calendar, so the wall-clock time of
        day survives DST transitions.
        """
        if days == 0:
            return self
        return TimeSlot(start=self.start.add(days=days), end=self.end.add(days=days))

    def __str__(self) -> str:
        return f"{self.start.format('HH:mm')}-{self.end.format('HH:mm')}"


@dataclass(frozen=True)
class WindowSpec:
    """Provider input for creating or replacing a window."""
    anchor_date: Date
    slots: Sequence[TimeSlot]
    recurrence: Recurrence = Recurrence.NONE
    label: str = ""

    @classmethod
    def from_times(
        cls,
        anchor_date: str,
        times: Sequence[Tuple[str, str]],
        recurrence: Recurrence = Recurrence.NONE,
        timezone: str = "UTC",
        label: str = "",
    ) -> "WindowSpec":
        """
        Build a spec from an ISO date and ``("HH:mm", "HH:mm")`` pairs.

        Example:
            WindowSpec.from_times("2025-10-22", [("08:00", "09:00")])
        """
        anchor = pendulum.parse(anchor_date, exact=True)
        slots = [
            TimeSlot(
                start=pendulum.parse(f"{anchor_date} {start}", tz=timezone),
                end=pendulum.parse(f"{anchor_date} {end}", tz=timezone),
            )
            for start, end in times
        ]
        return cls(anchor_date=anchor, slots=slots, recurrence=Recurrence(recurrence), label=label)


@dataclass(frozen=True)
class AvailabilityWindow:
    """
    A provider's one-off or recurring date template holding 1-5 slots.

    ``version`` is bumped by every committed update and guards replace and
    delete against concurrent reservations.
    """
    id: str
    provider_id: str
    anchor_date: Date
    recurrence: Recurrence
    slots: Tuple[TimeSlot, ...]
    label: str = ""
    version: int = 1
    created_at: Optional[DateTime] = None

    def slot_ref(self, occurrence_date: Date, slot_index: int) -> "SlotRef":
        return SlotRef(window_id=self.id, occurrence_date=occurrence_date, slot_index=slot_index)


@dataclass(frozen=True)
class SlotRef:
    """Synthetic identity of one slot instance: (window, occurrence date, index)."""
    window_id: str
    occurrence_date: Date
    slot_index: int

    def __str__(self) -> str:
        return f"{self.window_id}@{self.occurrence_date.isoformat()}#{self.slot_index}"


@dataclass(frozen=True)
class SlotRecord:
    """
    Versioned booking state of one slot instance.

    A slot instance without a stored record is free at version 0.
    """
    booking_ref: Optional[str] = None
    version: int = 0

    @property
    def is_booked(self) -> bool:
        return self.booking_ref is not None


FREE_SLOT = SlotRecord()


@dataclass(frozen=True)
class SlotInstance:
    """A concrete, dated slot annotated with its booking state."""
    ref: SlotRef
    provider_id: str
    start: DateTime
    end: DateTime
    booking_ref: Optional[str] = None
    version: int = 0

    @property
    def is_booked(self) -> bool:
        return self.booking_ref is not None

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)

    def with_record(self, record: SlotRecord) -> "SlotInstance":
        return SlotInstance(
            ref=self.ref,
            provider_id=self.provider_id,
            start=self.start,
            end=self.end,
            booking_ref=record.booking_ref,
            version=record.version,
        )

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, DD.MM.YYYY | HH:mm – HH:mm (N min) [booked]
        """
        weekday = self.start.format("dddd")
        date_str = self.start.format("DD.MM.YYYY")
        time_str = f"{self.start.format('HH:mm')} – {self.end.format('HH:mm')}"
        duration = int((self.end - self.start).total_seconds() / 60)
        status = "booked" if self.is_booked else "free"
        return f"{weekday}, {date_str} | {time_str} ({duration} min) [{status}]"


@dataclass(frozen=True)
class Booking:
    """A holder's claim on exactly one slot instance."""
    id: str
    slot_ref: SlotRef
    provider_id: str
    holder_id: str
    created_at: DateTime
    status: BookingStatus = BookingStatus.ACTIVE
    cancelled_at: Optional[DateTime] = None
    slot_start: Optional[DateTime] = field(default=None, compare=False)
    version: int = 1

    @property
    def is_active(self) -> bool:
        return self.status is BookingStatus.ACTIVE
