"""
Structural validation of window definitions.

Pure domain logic: no storage, no clock. A slot that lies in the past is
fine here; it is rejected at reservation time instead.
"""

from typing import List, Sequence

from .exceptions import InvalidWindowSpec
from .models import Recurrence, TimeSlot, WindowSpec

MAX_SLOTS_PER_WINDOW = 5


class ConflictValidator:
    """
    Validates window specs before they are stored.

    Checks:
    1. Slot count is between 1 and ``max_slots``
    2. Every timestamp carries a timezone
    3. Every slot ends strictly after it starts
    4. Every slot starts on the anchor date
    5. No two slots overlap (sorted by start, adjacent compare)
    """

    def __init__(self, max_slots: int = MAX_SLOTS_PER_WINDOW):
        if not 1 <= max_slots <= MAX_SLOTS_PER_WINDOW:
            raise ValueError(
                f"max_slots must be between 1 and {MAX_SLOTS_PER_WINDOW}, got {max_slots}"
            )
        self.max_slots = max_slots

    def validate(self, spec: WindowSpec) -> None:
        """
        Raise ``InvalidWindowSpec`` listing every violation in ``spec``.
        """
        errors = self.collect_errors(spec)
        if errors:
            raise InvalidWindowSpec(errors)

    def collect_errors(self, spec: WindowSpec) -> List[str]:
        errors: List[str] = []

        try:
            Recurrence(spec.recurrence)
        except ValueError:
            errors.append(f"Unknown recurrence: {spec.recurrence!r}")

        slots = list(spec.slots)
        if not 1 <= len(slots) <= self.max_slots:
            errors.append(
                f"A window needs between 1 and {self.max_slots} slots, got {len(slots)}"
            )

        well_formed: List[TimeSlot] = []
        for index, slot in enumerate(slots):
            slot_errors = self._check_slot(index, slot, spec)
            if slot_errors:
                errors.extend(slot_errors)
            else:
                well_formed.append(slot)

        errors.extend(self._check_overlaps(well_formed))
        return errors

    def _check_slot(self, index: int, slot: TimeSlot, spec: WindowSpec) -> List[str]:
        if slot.start.tzinfo is None or slot.end.tzinfo is None:
            return [f"Slot {index}: timestamps must be timezone-aware"]

        errors: List[str] = []
        if slot.end <= slot.start:
            errors.append(f"Slot {index}: end {slot.end} must be after start {slot.start}")
        if slot.start.date() != spec.anchor_date:
            errors.append(
                f"Slot {index}: starts on {slot.start.date().isoformat()}, "
                f"expected anchor date {spec.anchor_date.isoformat()}"
            )
        return errors

    @staticmethod
    def _check_overlaps(slots: Sequence[TimeSlot]) -> List[str]:
        """
        Report overlapping neighbours.

        After sorting by start, an overlap anywhere implies an overlap
        between some adjacent pair, so one pass suffices.
        """
        errors: List[str] = []
        ordered = sorted(slots, key=lambda s: s.start)
        for previous, current in zip(ordered, ordered[1:]):
            if current.start < previous.end:
                errors.append(f"Slots {previous} and {current} overlap")
        return errors
