"""Global Live Override - administrator-controlled go-live flag.

The flag plus the currently selected (active) slot id. Every change is tagged
with its :class:`~switchover.models.Origin` so the realtime bridge can tell
local edits from ones it applied on behalf of another session.

The override only starts overruling the schedule once an administrator has
set it at least once (``engaged``). Before that, a disabled flag leaves every
slot to its schedule. Engagement is part of the shared admin state, so every
session connected to the same document reaches the same decision.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .activity_log import ActivityLog
from .config import SYSTEM_SLOT_ID
from .models import AdminState, LogEvent, Origin

logger = logging.getLogger(__name__)

GO_LIVE = 'go_live'
ACTIVE_SLOT = 'active_slot'
ENGAGED = 'engaged'


@dataclass(frozen=True)
class OverrideChange:
    """Notification payload for override listeners."""
    field: str
    value: Any
    origin: Origin


class GlobalLiveOverride:
    """Process-wide go-live flag and active slot selection."""

    def __init__(self, activity_log: ActivityLog):
        self._activity_log = activity_log
        self._lock = threading.Lock()
        self._enabled = False
        self._engaged = False
        self._active_slot_id: Optional[str] = None
        self._listeners: list[Callable[[OverrideChange], None]] = []

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def engaged(self) -> bool:
        """True once the flag has been set explicitly, locally or remotely."""
        return self._engaged

    @property
    def active_slot_id(self) -> Optional[str]:
        return self._active_slot_id

    def snapshot(self) -> AdminState:
        with self._lock:
            return AdminState(
                is_go_live_enabled=self._enabled,
                active_slot_id=self._active_slot_id,
                override_engaged=self._engaged,
            )

    def is_active(self, slot_id: str) -> bool:
        return self._active_slot_id is not None and self._active_slot_id == slot_id

    def forces_live(self, slot_id: str) -> bool:
        return self._enabled and self.is_active(slot_id)

    def forces_replay(self, slot_id: str) -> bool:
        return self._engaged and not self._enabled and self.is_active(slot_id)

    def set(self, enabled: bool, origin: Origin = Origin.LOCAL) -> None:
        """Update the flag and record an admin action in the activity log."""
        enabled = bool(enabled)
        with self._lock:
            self._enabled = enabled
            self._engaged = True
            slot_id = self._active_slot_id or SYSTEM_SLOT_ID

        state = 'enabled' if enabled else 'disabled'
        logger.info(f'Go Live {state} ({origin.value})')
        self._activity_log.append(slot_id, LogEvent.ADMIN_ACTION, f'Go Live {state}')
        self._notify(OverrideChange(GO_LIVE, enabled, origin))

    def mark_engaged(self, origin: Origin = Origin.REMOTE) -> None:
        """Engage the override without changing the flag. Engagement is never undone."""
        with self._lock:
            if self._engaged:
                return
            self._engaged = True
        logger.info(f'Go Live override engaged ({origin.value})')
        self._notify(OverrideChange(ENGAGED, True, origin))

    def set_active_slot(self, slot_id: Optional[str], origin: Origin = Origin.LOCAL) -> None:
        with self._lock:
            self._active_slot_id = slot_id
        logger.info(f'Active slot is now {slot_id} ({origin.value})')
        self._notify(OverrideChange(ACTIVE_SLOT, slot_id, origin))

    def subscribe(self, listener: Callable[[OverrideChange], None]) -> Callable[[], None]:
        """Register a change listener. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: OverrideChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        # Call listeners outside of lock to avoid potential deadlocks
        for listener in listeners:
            try:
                listener(change)
            except Exception as e:
                logger.error(f'Override listener failed on {change.field}: {e}', exc_info=True)
