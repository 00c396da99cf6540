"""Admin gate and console.

The gate is a single shared-secret comparison. Once it has been passed, the
console drives the Global Live Override and the active-slot selection and
shows slot status plus the recent activity log.
"""

import hmac
import logging
from datetime import datetime
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .config import MESSAGES
from .errors import AuthenticationError, SlotNotFoundError
from .models import ActivityLogEntry, utcnow
from .session import WebinarSession
from .state import SessionState
from .utils import format_datetime, time_remaining

logger = logging.getLogger(__name__)


class AdminGate:
    """Compares a candidate secret against the configured admin password."""

    def __init__(self, secret: str):
        self._secret = secret.encode()

    def check(self, candidate: Optional[str]) -> bool:
        if not candidate:
            return False
        return hmac.compare_digest(candidate.encode(), self._secret)


class AdminConsole:
    """Operator console over every slot in the registry."""

    def __init__(
        self,
        state: SessionState,
        gate: Optional[AdminGate] = None,
        bridge=None,
        scheduler: Optional[AsyncIOScheduler] = None,
        settle_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.state = state
        self.gate = gate or AdminGate(state.config.admin_password)
        self._bridge = bridge
        self._scheduler = scheduler
        self._settle_delay = settle_delay
        self._clock = clock
        self._authenticated = False
        self.session: Optional[WebinarSession] = None

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    def login(self, secret: Optional[str]) -> None:
        if not self.gate.check(secret):
            logger.warning('Rejected admin login')
            raise AuthenticationError('Invalid password')
        self._authenticated = True
        logger.info('Admin logged in')

    def logout(self) -> None:
        self._authenticated = False
        logger.info('Admin logged out')

    async def open(self) -> None:
        """Start a session observing every slot."""
        self._require_auth()
        if self.session is not None:
            return
        self.session = WebinarSession(
            self.state,
            scheduler=self._scheduler,
            bridge=self._bridge,
            settle_delay=self._settle_delay,
            clock=self._clock,
            name='admin',
        )
        await self.session.start()

    async def close(self) -> None:
        if self.session is not None:
            await self.session.stop()
            self.session = None
        self.logout()

    def set_go_live(self, enabled: bool) -> None:
        self._require_auth()
        self.state.override.set(enabled)

    def toggle_go_live(self) -> bool:
        """Flip the Go Live flag and return the new value."""
        self._require_auth()
        enabled = not self.state.override.enabled
        self.state.override.set(enabled)
        return enabled

    def select_slot(self, slot_id: Optional[str]) -> None:
        """Make ``slot_id`` the active slot, or clear the selection with None."""
        self._require_auth()
        if slot_id is not None and slot_id not in self.state.registry:
            raise SlotNotFoundError(slot_id)
        self.state.override.set_active_slot(slot_id)

    def slot_overview(self) -> list[dict]:
        """Slot status rows for the dashboard."""
        self._require_auth()
        now = self._clock()
        active = self.state.override.active_slot_id
        rows = []
        for slot in self.state.registry.all():
            row = slot.to_dict()
            row['isSelected'] = slot.id == active
            row['startLabel'] = format_datetime(slot.scheduled_start_time)
            row['switchLabel'] = format_datetime(slot.scheduled_switch_time)
            row['switchIn'] = time_remaining(slot.scheduled_switch_time, now)
            if self.session is not None and slot.id in self.session.engines:
                row['transitioning'] = self.session.engine(slot.id).is_transitioning
            rows.append(row)
        return rows

    def recent_logs(self, n: Optional[int] = None) -> list[ActivityLogEntry]:
        """Most recent activity entries, newest first."""
        self._require_auth()
        return self.state.activity_log.recent(n or self.state.config.recent_logs)

    def _require_auth(self) -> None:
        if not self._authenticated:
            raise AuthenticationError(MESSAGES['errors']['unauthorized'])
