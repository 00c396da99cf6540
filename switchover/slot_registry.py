"""Slot registry - the set of webinar slots and their observable state."""

import copy
import logging
import threading
from typing import Iterable, Optional

from .models import Mode, WebinarSlot, parse_timestamp
from .utils import is_valid_live_url, is_valid_replay_url

logger = logging.getLogger(__name__)

# Fields a partial update may touch
UPDATABLE_FIELDS = frozenset({
    'name',
    'replay_url',
    'live_url',
    'scheduled_start_time',
    'scheduled_switch_time',
    'is_active',
    'current_mode',
    'attendee_count',
    'last_switch_time',
})


class SlotRegistry:
    """Thread-safe store of webinar slots keyed by slot id.

    Reads hand out copies so callers cannot mutate registry state except
    through :meth:`update`.
    """

    def __init__(self, slots: Optional[Iterable[WebinarSlot]] = None):
        self._lock = threading.Lock()
        self._slots: dict[str, WebinarSlot] = {}
        if slots is not None:
            self.initialize(slots)

    def initialize(self, slots: Iterable[WebinarSlot]) -> None:
        """Bulk-load slots, replacing any prior content."""
        loaded: dict[str, WebinarSlot] = {}
        for slot in slots:
            if slot.scheduled_switch_time < slot.scheduled_start_time:
                logger.warning(
                    f'Slot {slot.id} switches at {slot.scheduled_switch_time.isoformat()} '
                    f'before it starts at {slot.scheduled_start_time.isoformat()}'
                )
            if not is_valid_replay_url(slot.replay_url):
                logger.warning(f'Slot {slot.id} has an unrecognised replay URL: {slot.replay_url}')
            if not is_valid_live_url(slot.live_url):
                logger.warning(f'Slot {slot.id} has an unrecognised live URL: {slot.live_url}')
            if slot.id in loaded:
                logger.warning(f'Duplicate slot id {slot.id}, keeping the last definition')
            loaded[slot.id] = copy.copy(slot)

        with self._lock:
            self._slots = loaded
        logger.info(f'Loaded {len(loaded)} webinar slots')

    def all(self) -> list[WebinarSlot]:
        with self._lock:
            return [copy.copy(slot) for slot in self._slots.values()]

    def get(self, slot_id: Optional[str]) -> Optional[WebinarSlot]:
        with self._lock:
            slot = self._slots.get(slot_id)
            return copy.copy(slot) if slot is not None else None

    def __contains__(self, slot_id: object) -> bool:
        with self._lock:
            return slot_id in self._slots

    def update(self, slot_id: str, **fields) -> Optional[WebinarSlot]:
        """Merge the supplied fields into a slot.

        Unknown slot ids are ignored (nothing is created). Returns the updated
        slot, or None when the id is unknown.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f'Cannot update slot fields: {", ".join(sorted(unknown))}')

        if 'current_mode' in fields:
            fields['current_mode'] = Mode(fields['current_mode'])
        for key in ('scheduled_start_time', 'scheduled_switch_time', 'last_switch_time'):
            if fields.get(key) is not None:
                fields[key] = parse_timestamp(fields[key])
        if 'attendee_count' in fields and fields['attendee_count'] < 0:
            raise ValueError(f'attendee_count must be non-negative, got {fields["attendee_count"]}')

        with self._lock:
            slot = self._slots.get(slot_id)
            if slot is None:
                logger.debug(f'Ignoring update for unknown slot {slot_id}')
                return None
            for key, value in fields.items():
                setattr(slot, key, value)
            return copy.copy(slot)
