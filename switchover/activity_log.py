"""Append-only, capacity-bounded activity log."""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable, Optional

from .config import DEFAULT_LOG_CAPACITY
from .models import ActivityLogEntry, LogEvent, utcnow
from .utils import generate_id

logger = logging.getLogger(__name__)


class ActivityLog:
    """Keeps the most recent ``capacity`` entries, evicting the oldest first.

    Entries are never updated or removed individually. Listeners are called
    after every append, outside of the lock.
    """

    def __init__(self, capacity: int = DEFAULT_LOG_CAPACITY):
        if capacity < 1:
            raise ValueError('capacity must be at least 1')
        self._entries: deque[ActivityLogEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._listeners: list[Callable[[ActivityLogEntry], None]] = []

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def append(
        self,
        slot_id: str,
        event: LogEvent,
        details: str,
        attendee_count: Optional[int] = None,
        timestamp: Optional[datetime] = None,
        entry_id: Optional[str] = None,
    ) -> ActivityLogEntry:
        """Store a new entry, assigning an id and timestamp if absent."""
        entry = ActivityLogEntry(
            id=entry_id or f'log_{generate_id()}',
            slot_id=slot_id,
            timestamp=timestamp or utcnow(),
            event=LogEvent(event),
            details=details,
            attendee_count=attendee_count,
        )
        with self._lock:
            self._entries.append(entry)
            listeners = list(self._listeners)

        logger.debug(f'[{slot_id}] {entry.event.value}: {details}')
        for listener in listeners:
            try:
                listener(entry)
            except Exception as e:
                logger.error(f'Activity log listener failed: {e}', exc_info=True)
        return entry

    def recent(self, n: Optional[int] = None) -> list[ActivityLogEntry]:
        """Return the ``n`` most recently appended entries, most recent first."""
        with self._lock:
            entries = list(self._entries)
        entries.reverse()
        if n is None:
            return entries
        return entries[:max(n, 0)]

    def subscribe(self, listener: Callable[[ActivityLogEntry], None]) -> Callable[[], None]:
        """Register an append listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
