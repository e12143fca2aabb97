"""
Per-provider availability windows and their slot listings.

The store owns window lifecycle. Window definitions are read-mostly; the
only guarded writes are replace and delete, which commit conditionally on
the window version and on the slot records read during validation.
"""

from __future__ import annotations

import heapq
import logging
import uuid
from typing import Dict, Iterator, List, Optional, Tuple

import pendulum

from ..config import SchedulerConfig
from ..domain.conflict_validator import ConflictValidator
from ..domain.exceptions import (
    InvalidSlotReference,
    WindowHasActiveBookings,
    WindowModifiedConcurrently,
    WindowNotFound,
)
from ..domain.models import (
    FREE_SLOT,
    AvailabilityWindow,
    Recurrence,
    SlotInstance,
    SlotRecord,
    SlotRef,
    TimeRange,
    TimeSlot,
    WindowSpec,
)
from ..domain.recurrence import RecurrenceExpander
from .ports import Clock, SchedulerRepository

logger = logging.getLogger(__name__)


class AvailabilityStore:
    """
    Creates, replaces, deletes and lists a provider's availability windows.
    """

    def __init__(
        self,
        repository: SchedulerRepository,
        clock: Clock,
        config: Optional[SchedulerConfig] = None,
        expander: Optional[RecurrenceExpander] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._config = config or SchedulerConfig()
        self._validator = ConflictValidator(max_slots=self._config.max_slots_per_window)
        self._expander = expander or RecurrenceExpander()

    def create_window(self, provider_id: str, spec: WindowSpec) -> AvailabilityWindow:
        """
        Validate ``spec`` and persist it as a new window for ``provider_id``.

        Raises:
            InvalidWindowSpec: If the slots break any structural rule
        """
        self._validator.validate(spec)
        window = self._build_window(
            window_id=uuid.uuid4().hex,
            provider_id=provider_id,
            spec=spec,
            version=1,
        )
        self._repository.insert_window(window)

        logger.info(
            "Created window %s for provider %s (%s, %d slots from %s)",
            window.id, provider_id, window.recurrence.value, len(window.slots),
            window.anchor_date.isoformat(),
        )
        return window

    def update_window(self, window_id: str, spec: WindowSpec) -> AvailabilityWindow:
        """
        Replace a window's definition entirely.

        A booked slot instance survives only if the new definition still
        produces its occurrence date and keeps the same start and end at
        the same slot index.

        Raises:
            WindowNotFound: If the window does not exist
            InvalidWindowSpec: If the new slots break any structural rule
            WindowHasActiveBookings: If a booked slot would be removed or retimed
            WindowModifiedConcurrently: If the window or its slots changed
                between validation and commit without blocking the update
        """
        current = self.get_window(window_id)
        self._validator.validate(spec)

        replacement = self._build_window(
            window_id=current.id,
            provider_id=current.provider_id,
            spec=spec,
            version=current.version + 1,
            created_at=current.created_at,
        )

        records = self._repository.list_slot_records(window_id)
        self._ensure_bookings_preserved(current, replacement, records)

        snapshot = {ref: record.version for ref, record in records.items()}
        if not self._repository.replace_window(replacement, current.version, snapshot):
            self._raise_for_lost_race(current, replacement)

        logger.info("Updated window %s to version %d", window_id, replacement.version)
        return replacement

    def delete_window(self, window_id: str) -> None:
        """
        Delete a window together with its free slot records.

        Raises:
            WindowNotFound: If the window does not exist
            WindowHasActiveBookings: If any slot instance is booked
        """
        current = self.get_window(window_id)
        records = self._repository.list_slot_records(window_id)
        self._ensure_bookings_preserved(current, None, records)

        snapshot = {ref: record.version for ref, record in records.items()}
        if not self._repository.remove_window(window_id, current.version, snapshot):
            self._raise_for_lost_race(current, None)

        logger.info("Deleted window %s of provider %s", window_id, current.provider_id)

    def get_window(self, window_id: str) -> AvailabilityWindow:
        window = self._repository.get_window(window_id)
        if window is None:
            raise WindowNotFound(window_id)
        return window

    def list_windows(self, provider_id: str) -> List[AvailabilityWindow]:
        """Return a provider's windows ordered by anchor date."""
        windows = self._repository.list_windows(provider_id)
        return sorted(windows, key=lambda w: (w.anchor_date, w.id))

    def list_slots(
        self,
        provider_id: str,
        time_range: Optional[TimeRange] = None,
        only_free: bool = False,
    ) -> Iterator[SlotInstance]:
        """
        Lazily list the provider's slot instances intersecting ``time_range``.

        Instances from all windows are merged in start order and annotated
        with their booking state. Without a range, the next
        ``list_horizon_days`` days from now are listed.
        """
        if time_range is None:
            now = self._clock.now()
            time_range = TimeRange(start=now, end=now.add(days=self._config.list_horizon_days))

        windows = self._repository.list_windows(provider_id)
        streams = [self._annotated_instances(window, time_range) for window in windows]
        merged = heapq.merge(*streams, key=lambda inst: (inst.start, inst.end, str(inst.ref)))

        if only_free:
            return (instance for instance in merged if not instance.is_booked)
        return merged

    def resolve_slot(self, ref: SlotRef) -> Tuple[AvailabilityWindow, SlotInstance]:
        """
        Resolve a slot reference to its window and current slot instance.

        Raises:
            WindowNotFound: If the referenced window does not exist
            InvalidSlotReference: If the ref addresses no occurrence of the window
        """
        window = self.get_window(ref.window_id)
        instance = self._expander.instance_for(window, ref)
        if instance is None:
            raise InvalidSlotReference(f"Slot {ref} is not an occurrence of window {window.id}")
        return window, instance.with_record(self._repository.get_slot_record(ref))

    def _annotated_instances(
        self,
        window: AvailabilityWindow,
        time_range: TimeRange,
    ) -> Iterator[SlotInstance]:
        records = self._repository.list_slot_records(window.id)
        for instance in self._expander.expand(window, time_range):
            yield instance.with_record(records.get(instance.ref, FREE_SLOT))

    def _build_window(
        self,
        *,
        window_id: str,
        provider_id: str,
        spec: WindowSpec,
        version: int,
        created_at=None,
    ) -> AvailabilityWindow:
        # Stdlib date/datetime input is accepted; expansion needs pendulum types
        anchor = spec.anchor_date
        return AvailabilityWindow(
            id=window_id,
            provider_id=provider_id,
            anchor_date=pendulum.date(anchor.year, anchor.month, anchor.day),
            recurrence=Recurrence(spec.recurrence),
            slots=tuple(
                TimeSlot(start=pendulum.instance(slot.start), end=pendulum.instance(slot.end))
                for slot in spec.slots
            ),
            label=spec.label,
            version=version,
            created_at=created_at or self._clock.now(),
        )

    def _ensure_bookings_preserved(
        self,
        current: AvailabilityWindow,
        replacement: Optional[AvailabilityWindow],
        records: Dict[SlotRef, SlotRecord],
    ) -> None:
        """
        Raise if a booked slot instance would be removed or retimed.

        ``replacement=None`` means the window is being deleted.
        """
        blocked: List[str] = []
        for ref, record in records.items():
            if not record.is_booked:
                continue
            if replacement is None:
                blocked.append(str(ref))
                continue

            before = self._expander.instance_for(current, ref)
            after = self._expander.instance_for(replacement, ref)
            if after is None or before is None or (after.start, after.end) != (before.start, before.end):
                blocked.append(str(ref))

        if blocked:
            raise WindowHasActiveBookings(current.id, f"booked slots {', '.join(sorted(blocked))}")

    def _raise_for_lost_race(
        self,
        current: AvailabilityWindow,
        replacement: Optional[AvailabilityWindow],
    ) -> None:
        """
        Re-check after a failed conditional write and raise the precise outcome.
        """
        logger.warning("Conditional write on window %s lost a race; re-checking", current.id)

        latest = self._repository.get_window(current.id)
        if latest is None:
            raise WindowNotFound(current.id)

        # A reservation that slipped in is reported as a booking conflict
        records = self._repository.list_slot_records(current.id)
        self._ensure_bookings_preserved(latest, replacement, records)
        raise WindowModifiedConcurrently(
            f"Window {current.id} changed while it was being modified; re-read and retry"
        )
