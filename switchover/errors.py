"""Exception types raised by the switchover core."""

from typing import Optional


class SwitchoverError(Exception):
    """Base class for all switchover errors."""


class SlotNotFoundError(SwitchoverError):
    """Requested slot id is not in the registry. Not retried."""

    def __init__(self, slot_id: Optional[str]):
        self.slot_id = slot_id
        super().__init__(f'Webinar slot not found: {slot_id}')


class SurfaceError(SwitchoverError):
    """A player widget failed. Recoverable through a manual retry."""


class LiveSessionError(SurfaceError):
    """Live session failed during ``init``, ``join`` or ``start``."""

    STAGES = ('init', 'join', 'start')

    def __init__(self, stage: str, message: str = ''):
        if stage not in self.STAGES:
            raise ValueError(f'Unknown live session stage: {stage}')
        self.stage = stage
        super().__init__(message or f'Live session {stage} failed')


class ReplayLoadError(SurfaceError):
    """Replay source could not be loaded."""


class SyncError(SwitchoverError):
    """Realtime write or subscribe failure."""


class AuthenticationError(SwitchoverError):
    """Admin gate rejected the supplied secret."""
