"""Viewer surface - shows one slot in whichever mode the engine has committed."""

import logging
from datetime import datetime
from enum import Enum, auto
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .config import MESSAGES
from .errors import LiveSessionError, ReplayLoadError, SurfaceError
from .models import LogEvent, Mode, TransitionState, utcnow
from .players import LivePlayer, LiveSessionConfig, PlayerCallbacks, ReplayPlayer, dispatch_widget_message
from .session import WebinarSession
from .state import SessionState
from .transition_engine import ModeTransitionEngine

logger = logging.getLogger(__name__)


class SurfaceStatus(Enum):
    IDLE = auto()
    READY = auto()
    ERROR = auto()
    NOT_FOUND = auto()
    CLOSED = auto()


class ViewerSurface:
    """One attendee's view of a slot.

    Owns a :class:`WebinarSession` for its slot, so the schedule timer and the
    realtime subscription live exactly as long as the view is open.
    """

    def __init__(
        self,
        state: SessionState,
        slot_id: str,
        replay_player: ReplayPlayer,
        live_player: LivePlayer,
        bridge=None,
        scheduler: Optional[AsyncIOScheduler] = None,
        settle_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        user_name: str = 'Webinar Attendee',
        user_email: str = 'attendee@webinar.com',
    ):
        self.state = state
        self.slot_id = slot_id
        self._replay_player = replay_player
        self._live_player = live_player
        self._bridge = bridge
        self._scheduler = scheduler
        self._settle_delay = settle_delay
        self._clock = clock
        self._user_name = user_name
        self._user_email = user_email

        self.status = SurfaceStatus.IDLE
        self.error: Optional[str] = None
        self.rendered_mode: Optional[Mode] = None
        self._mounted = False
        self.attendee_count = 0
        self.session: Optional[WebinarSession] = None
        self._engine: Optional[ModeTransitionEngine] = None
        self._unsubscribe_engine: Optional[Callable[[], None]] = None
        self._callbacks = PlayerCallbacks(
            on_attendee_count=self._on_attendee_count,
            on_event=self._on_player_event,
        )

    @property
    def engine(self) -> Optional[ModeTransitionEngine]:
        return self._engine

    @property
    def notice(self) -> TransitionState:
        """The "switching" notice to overlay while a transition is in flight."""
        if self._engine is None:
            return TransitionState()
        return self._engine.transition_state

    async def open(self) -> SurfaceStatus:
        """Resolve the slot, start its session and mount the matching player."""
        slot = self.state.registry.get(self.slot_id)
        if slot is None:
            self.status = SurfaceStatus.NOT_FOUND
            self.error = MESSAGES['errors']['invalid_slot']
            logger.warning(f'Viewer requested unknown slot {self.slot_id}')
            return self.status

        self.attendee_count = slot.attendee_count
        self.session = WebinarSession(
            self.state,
            [self.slot_id],
            scheduler=self._scheduler,
            bridge=self._bridge,
            settle_delay=self._settle_delay,
            clock=self._clock,
            name=f'viewer-{self.slot_id}',
        )
        await self.session.start()
        self._engine = self.session.engine(self.slot_id)
        self._unsubscribe_engine = self._engine.subscribe(self._on_engine_change)
        self._render(self._engine.mode)
        return self.status

    async def close(self) -> None:
        """Unmount the player and release the session."""
        if self._unsubscribe_engine is not None:
            self._unsubscribe_engine()
            self._unsubscribe_engine = None
        self._unmount()
        if self.session is not None:
            await self.session.stop()
        self.status = SurfaceStatus.CLOSED

    def retry(self) -> SurfaceStatus:
        """Remount the current mode after a player failure."""
        if self.status != SurfaceStatus.ERROR or self._engine is None:
            return self.status
        logger.info(f'[{self.slot_id}] Retrying {self._engine.mode.value} player')
        self._render(self._engine.mode)
        return self.status

    def receive_widget_message(self, origin: str, raw) -> bool:
        """Feed a message posted by the embedded replay widget.

        Only messages from the slot's replay origin are accepted. Returns True
        if the message was understood.
        """
        if self.rendered_mode != Mode.REPLAY:
            return False
        slot = self.state.registry.get(self.slot_id)
        if slot is None:
            return False
        return dispatch_widget_message(origin, raw, slot.replay_url, self._callbacks)

    def _on_engine_change(self, engine: ModeTransitionEngine) -> None:
        if engine.is_transitioning:
            return
        if engine.mode != self.rendered_mode:
            self._render(engine.mode)

    def _render(self, mode: Mode) -> None:
        slot = self.state.registry.get(self.slot_id)
        if slot is None:
            self.status = SurfaceStatus.NOT_FOUND
            self.error = MESSAGES['errors']['invalid_slot']
            return

        self._unmount()
        self.rendered_mode = mode
        try:
            if mode == Mode.LIVE:
                session = LiveSessionConfig.for_slot(
                    slot,
                    leave_url=self.state.config.app_url,
                    user_name=self._user_name,
                    user_email=self._user_email,
                )
                self._live_player.mount(self.slot_id, session, self._callbacks)
            else:
                self._replay_player.mount(self.slot_id, slot.replay_url, self._callbacks)
        except LiveSessionError as e:
            self._fail(f'{MESSAGES["errors"]["live_init_failed"]} ({e.stage}): {e}')
            if e.stage == 'init':
                self._log(LogEvent.ADMIN_ACTION, f'Live session initialization error: {e}')
        except ReplayLoadError as e:
            self._fail(f'{MESSAGES["errors"]["replay_load_failed"]}: {e}')
        except SurfaceError as e:
            self._fail(str(e))
        else:
            self._mounted = True
            self.status = SurfaceStatus.READY
            self.error = None
            if mode == Mode.LIVE:
                logger.info(f'[{self.slot_id}] {MESSAGES["success"]["live_connected"]}')
                self._log(LogEvent.ATTENDEE_JOINED, 'Joined live session')
            else:
                logger.info(f'[{self.slot_id}] {MESSAGES["success"]["replay_loaded"]}')
                self._log(LogEvent.ATTENDEE_JOINED, 'Replay session loaded', 1)

    def _unmount(self) -> None:
        if self.rendered_mode is None:
            return
        mode, mounted = self.rendered_mode, self._mounted
        self.rendered_mode = None
        self._mounted = False
        player = self._live_player if mode == Mode.LIVE else self._replay_player
        try:
            player.unmount()
        except Exception as e:
            logger.warning(f'[{self.slot_id}] Error unmounting {mode.value} player: {e}')
            return
        if mounted and mode == Mode.LIVE:
            self._log(LogEvent.ATTENDEE_LEFT, 'Left live session')

    def _fail(self, message: str) -> None:
        self.status = SurfaceStatus.ERROR
        self.error = message
        logger.error(f'[{self.slot_id}] {message}')

    def _log(self, event: LogEvent, details: str, attendee_count: Optional[int] = None) -> None:
        self.state.activity_log.append(self.slot_id, event, details, attendee_count)

    def _on_attendee_count(self, count: int) -> None:
        try:
            count = max(int(count), 0)
            self.attendee_count = count
            self.state.registry.update(self.slot_id, attendee_count=count)
        except (TypeError, ValueError) as e:
            logger.debug(f'[{self.slot_id}] Ignoring attendee count {count!r}: {e}')

    def _on_player_event(self, event: LogEvent, details: str, attendee_count: Optional[int] = None) -> None:
        self._log(event, details, attendee_count)
