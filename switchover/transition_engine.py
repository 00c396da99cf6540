"""Mode transition engine - per-slot replay/live state machine.

Each engine owns one slot inside one session. It decides the correct mode at
every evaluation and drives a managed transition when the decision changes:

1. Record a ``mode_switched`` activity-log entry with the trigger reason.
2. Show the "switching" notice through :class:`TransitionState`.
3. After the settle delay, commit the target mode and ``last_switch_time``
   into the slot registry and clear the notice.

A transition is never cancelled or preempted once started. Triggers observed
while it is in flight are ignored and the slot is re-evaluated right after it
settles.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, auto
from typing import TYPE_CHECKING, Callable, Optional

from .config import MESSAGES
from .errors import SlotNotFoundError
from .models import LogEvent, Mode, TransitionState, utcnow

if TYPE_CHECKING:
    from .state import SessionState

logger = logging.getLogger(__name__)

REASON_SCHEDULED = 'Scheduled transition to live session'
REASON_ADMIN_ON = 'Admin triggered Go Live'
REASON_ADMIN_OFF = 'Admin disabled Go Live'


class SlotPhase(Enum):
    """State machine for one slot."""
    REPLAY = auto()
    TRANSITIONING_TO_LIVE = auto()
    LIVE = auto()
    TRANSITIONING_TO_REPLAY = auto()

    @property
    def is_transitioning(self) -> bool:
        return self in (SlotPhase.TRANSITIONING_TO_LIVE, SlotPhase.TRANSITIONING_TO_REPLAY)


_TRANSITIONING_PHASE = {
    Mode.LIVE: SlotPhase.TRANSITIONING_TO_LIVE,
    Mode.REPLAY: SlotPhase.TRANSITIONING_TO_REPLAY,
}
_SETTLED_PHASE = {
    Mode.LIVE: SlotPhase.LIVE,
    Mode.REPLAY: SlotPhase.REPLAY,
}


@dataclass(frozen=True)
class Transition:
    """A decided mode change for a slot."""
    slot_id: str
    target_mode: Mode
    reason: str


class ModeTransitionEngine:
    """Decides replay vs. live for one slot and orchestrates the switch.

    Usage:
        engine = ModeTransitionEngine(state, 'morning_sales_training')
        engine.evaluate()           # from inside a running event loop
        await engine.wait_settled()
    """

    def __init__(
        self,
        state: 'SessionState',
        slot_id: str,
        settle_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        slot = state.registry.get(slot_id)
        if slot is None:
            raise SlotNotFoundError(slot_id)

        self._state = state
        self._slot_id = slot_id
        self._settle_delay = state.config.settle_delay if settle_delay is None else settle_delay
        self._clock = clock
        self._phase = _SETTLED_PHASE[slot.current_mode]
        self._transition_state = TransitionState()
        self._settle_task: Optional[asyncio.Task] = None
        self._closed = False
        self._listeners: list[Callable[['ModeTransitionEngine'], None]] = []

    @property
    def slot_id(self) -> str:
        return self._slot_id

    @property
    def phase(self) -> SlotPhase:
        return self._phase

    @property
    def mode(self) -> Mode:
        """Last committed mode (the one viewers are shown)."""
        if self._phase in (SlotPhase.LIVE, SlotPhase.TRANSITIONING_TO_REPLAY):
            return Mode.LIVE
        return Mode.REPLAY

    @property
    def transition_state(self) -> TransitionState:
        return replace(self._transition_state)

    @property
    def is_transitioning(self) -> bool:
        return self._phase.is_transitioning

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Callable[['ModeTransitionEngine'], None]) -> Callable[[], None]:
        """Call ``listener(engine)`` on every phase change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def decide(self, now: Optional[datetime] = None) -> Optional[Transition]:
        """Return the transition that should start now, if any. No side effects."""
        if self._phase.is_transitioning:
            return None

        slot = self._state.registry.get(self._slot_id)
        if slot is None:
            return None

        now = now or self._clock()
        override = self._state.override

        if self._phase == SlotPhase.REPLAY:
            if override.forces_live(self._slot_id):
                return Transition(self._slot_id, Mode.LIVE, REASON_ADMIN_ON)
            if now >= slot.scheduled_switch_time and not override.forces_replay(self._slot_id):
                return Transition(self._slot_id, Mode.LIVE, REASON_SCHEDULED)
        elif self._phase == SlotPhase.LIVE:
            if override.forces_replay(self._slot_id):
                return Transition(self._slot_id, Mode.REPLAY, REASON_ADMIN_OFF)
        return None

    def evaluate(self, now: Optional[datetime] = None) -> Optional[Transition]:
        """Evaluate the triggers and start a transition if one fires.

        Must be called from inside a running event loop. Returns the started
        transition, or None when nothing fired.
        """
        if self._closed:
            return None

        transition = self.decide(now)
        if transition is not None:
            self._begin(transition)
        return transition

    async def wait_settled(self) -> None:
        """Wait for the in-flight transition (and any it chained into) to settle."""
        while self._settle_task is not None and not self._settle_task.done():
            await asyncio.shield(self._settle_task)

    def close(self) -> None:
        """Stop starting new transitions. An in-flight one still completes."""
        self._closed = True
        self._listeners.clear()

    def _begin(self, transition: Transition) -> None:
        target = transition.target_mode
        self._phase = _TRANSITIONING_PHASE[target]

        self._state.activity_log.append(self._slot_id, LogEvent.MODE_SWITCHED, transition.reason)
        self._transition_state = TransitionState(
            is_transitioning=True,
            transition_message=f'Switching to {target.value} mode...',
            target_mode=target,
        )
        logger.info(f'[{self._slot_id}] {transition.reason}: switching to {target.value}')
        self._notify()

        loop = asyncio.get_running_loop()
        self._settle_task = loop.create_task(self._settle(transition))

    async def _settle(self, transition: Transition) -> None:
        """Commit the target mode after the settle delay."""
        target = transition.target_mode
        try:
            await asyncio.sleep(self._settle_delay)
        finally:
            self._state.registry.update(
                self._slot_id,
                current_mode=target,
                last_switch_time=self._clock(),
            )
            self._phase = _SETTLED_PHASE[target]
            self._transition_state = TransitionState()
            logger.info(f'[{self._slot_id}] {MESSAGES["success"]["mode_switched"]}: now in {target.value} mode')
            self._notify()

        # Pick up triggers that fired while the transition was in flight
        try:
            self.evaluate()
        except Exception as e:
            logger.error(f'[{self._slot_id}] Re-evaluation after settle failed: {e}', exc_info=True)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f'[{self._slot_id}] Transition listener failed: {e}', exc_info=True)


class EnginePool:
    """One engine per slot for every session sharing a :class:`SessionState`.

    Sessions acquire the engines for the slots they observe and release them
    on stop. An engine is closed when its last holder releases it. The settle
    delay and clock of the first holder apply to all later ones.
    """

    def __init__(self):
        self._engines: dict[str, ModeTransitionEngine] = {}
        self._holders: dict[str, int] = {}

    def acquire(
        self,
        state: 'SessionState',
        slot_id: str,
        settle_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> ModeTransitionEngine:
        engine = self._engines.get(slot_id)
        if engine is None:
            engine = ModeTransitionEngine(state, slot_id, settle_delay, clock)
            self._engines[slot_id] = engine
            self._holders[slot_id] = 0
        self._holders[slot_id] += 1
        return engine

    def release(self, slot_id: str) -> Optional[ModeTransitionEngine]:
        """Drop one hold. Returns the engine if this closed it, else None."""
        holders = self._holders.get(slot_id, 0) - 1
        if holders > 0:
            self._holders[slot_id] = holders
            return None
        self._holders.pop(slot_id, None)
        engine = self._engines.pop(slot_id, None)
        if engine is not None:
            engine.close()
            logger.debug(f'[{slot_id}] Engine released')
        return engine

    def get(self, slot_id: str) -> Optional[ModeTransitionEngine]:
        return self._engines.get(slot_id)

    def holders(self, slot_id: str) -> int:
        return self._holders.get(slot_id, 0)

    def __contains__(self, slot_id: object) -> bool:
        return slot_id in self._engines
