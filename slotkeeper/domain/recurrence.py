"""
Expansion of recurring windows into concrete, dated slot instances.

A window is a template. Occurrences are computed on demand for a query
range and are never materialised outside of it.
"""

from typing import Iterator, List, Optional, Tuple

import pendulum
from pendulum import Date

from .models import AvailabilityWindow, Recurrence, SlotInstance, SlotRef, TimeRange, TimeSlot


def days_between(earlier: Date, later: Date) -> int:
    """Signed number of calendar days from ``earlier`` to ``later``."""
    return later.toordinal() - earlier.toordinal()


class RecurrenceExpander:
    """
    Turns a window plus its recurrence rule into slot instances.

    Rules:
    - none: a single occurrence on the anchor date
    - daily: every calendar day from the anchor on
    - weekly: every 7 days from the anchor
    - monthly: the anchor's day-of-month; months without that day are skipped
    """

    def occurs_on(self, window: AvailabilityWindow, day: Date) -> bool:
        """Check whether ``day`` is an occurrence date of ``window``."""
        offset = days_between(window.anchor_date, day)
        if offset < 0:
            return False

        if window.recurrence is Recurrence.NONE:
            return offset == 0
        if window.recurrence is Recurrence.DAILY:
            return True
        if window.recurrence is Recurrence.WEEKLY:
            return offset % 7 == 0
        return day.day == window.anchor_date.day

    def occurrence_dates(
        self,
        window: AvailabilityWindow,
        first: Date,
        last: Date,
    ) -> Iterator[Date]:
        """
        Yield occurrence dates within ``[first, last]`` in ascending order.
        """
        anchor = window.anchor_date
        if last < anchor or last < first:
            return
        first = max(first, anchor)

        if window.recurrence is Recurrence.NONE:
            if first <= anchor <= last:
                yield anchor
            return

        if window.recurrence is Recurrence.MONTHLY:
            yield from self._monthly_dates(anchor, first, last)
            return

        step = 1 if window.recurrence is Recurrence.DAILY else 7
        offset = days_between(anchor, first)
        # Round up to the next multiple of the step
        offset = -(-offset // step) * step
        current = anchor.add(days=offset)
        while current <= last:
            yield current
            current = current.add(days=step)

    def expand(
        self,
        window: AvailabilityWindow,
        time_range: TimeRange,
    ) -> Iterator[SlotInstance]:
        """
        Lazily yield free slot instances of ``window`` intersecting ``time_range``.

        Instances are produced in start order. Booking state is not known
        here; callers overlay stored slot records.
        """
        # Widen the date scan by the longest slot span plus a day of
        # timezone slack; the exact filter below is on instants.
        span = max(days_between(window.anchor_date, slot.end.date()) for slot in window.slots)
        first = time_range.start.in_timezone("UTC").date().subtract(days=span + 1)
        last = time_range.end.in_timezone("UTC").date().add(days=1)

        ordered = self._slots_by_start(window)
        for occurrence in self.occurrence_dates(window, first, last):
            offset = days_between(window.anchor_date, occurrence)
            for index, slot in ordered:
                moved = slot.shifted(offset)
                if moved.start < time_range.end and moved.end > time_range.start:
                    yield self._instance(window, occurrence, index, moved)

    def instance_for(self, window: AvailabilityWindow, ref: SlotRef) -> Optional[SlotInstance]:
        """
        Resolve ``ref`` to a concrete instance, or None if it addresses no
        occurrence of ``window``.
        """
        if ref.window_id != window.id:
            return None
        if not 0 <= ref.slot_index < len(window.slots):
            return None
        if not self.occurs_on(window, ref.occurrence_date):
            return None

        offset = days_between(window.anchor_date, ref.occurrence_date)
        moved = window.slots[ref.slot_index].shifted(offset)
        return self._instance(window, ref.occurrence_date, ref.slot_index, moved)

    @staticmethod
    def _slots_by_start(window: AvailabilityWindow) -> List[Tuple[int, TimeSlot]]:
        return sorted(enumerate(window.slots), key=lambda pair: pair[1].start)

    @staticmethod
    def _instance(
        window: AvailabilityWindow,
        occurrence: Date,
        index: int,
        slot: TimeSlot,
    ) -> SlotInstance:
        return SlotInstance(
            ref=window.slot_ref(occurrence, index),
            provider_id=window.provider_id,
            start=slot.start,
            end=slot.end,
        )

    @staticmethod
    def _monthly_dates(anchor: Date, first: Date, last: Date) -> Iterator[Date]:
        year, month = first.year, first.month
        while (year, month) <= (last.year, last.month):
            days_in_month = pendulum.date(year, month, 1).days_in_month
            if anchor.day <= days_in_month:
                candidate = pendulum.date(year, month, anchor.day)
                if first <= candidate <= last:
                    yield candidate
            month += 1
            if month > 12:
                year, month = year + 1, 1
