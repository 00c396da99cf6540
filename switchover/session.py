"""Per-session evaluation loop.

A :class:`WebinarSession` holds the shared transition engine of every slot it
observes (see :class:`~switchover.transition_engine.EnginePool`) and feeds
them from two input streams:

- a periodic schedule check (APScheduler interval job, first run immediately)
- every Global Live Override or active-slot change

Both call the same idempotent evaluation. The interval job, the override
listener and the optional realtime bridge are scoped resources: acquired in
:meth:`WebinarSession.start`, released in :meth:`WebinarSession.stop`.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from .errors import SlotNotFoundError
from .models import utcnow
from .override import OverrideChange
from .state import SessionState
from .transition_engine import ModeTransitionEngine

logger = logging.getLogger(__name__)

CHECK_JOB_PREFIX = 'schedule_check'


class WebinarSession:
    """Runs the transition engines for the slots one viewer or operator observes."""

    def __init__(
        self,
        state: SessionState,
        slot_ids: Optional[Iterable[str]] = None,
        scheduler: Optional[AsyncIOScheduler] = None,
        bridge=None,
        settle_delay: Optional[float] = None,
        clock: Callable[[], datetime] = utcnow,
        name: str = 'session',
    ):
        self.state = state
        self.name = name
        self.bridge = bridge
        self._slot_ids = list(slot_ids) if slot_ids is not None else None
        self._scheduler = scheduler
        self._owns_scheduler = scheduler is None
        self._settle_delay = settle_delay
        self._clock = clock
        self._engines: dict[str, ModeTransitionEngine] = {}
        self._unsubscribe_override: Optional[Callable[[], None]] = None
        self._job_id = f'{CHECK_JOB_PREFIX}_{name}_{id(self)}'
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def engines(self) -> dict[str, ModeTransitionEngine]:
        return dict(self._engines)

    def engine(self, slot_id: str) -> ModeTransitionEngine:
        return self._engines[slot_id]

    async def start(self) -> None:
        """Create the engines and acquire the timer, listener and sync subscription."""
        if self._running:
            return

        slot_ids = self._slot_ids
        if slot_ids is None:
            slot_ids = [slot.id for slot in self.state.registry.all()]

        self._engines = {}
        try:
            for slot_id in dict.fromkeys(slot_ids):
                self._engines[slot_id] = self.state.engines.acquire(
                    self.state, slot_id, self._settle_delay, self._clock
                )
        except SlotNotFoundError:
            self._release_engines()
            raise

        self._unsubscribe_override = self.state.override.subscribe(self._on_override_change)
        self._running = True
        if self.bridge is not None:
            self.bridge.start()

        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._scheduler.add_job(
            func=self.check_schedule,
            trigger='interval',
            seconds=self.state.config.check_interval,
            id=self._job_id,
        )
        self._scheduler.get_job(self._job_id).modify(next_run_time=datetime.now(timezone.utc))
        if not self._scheduler.running:
            self._scheduler.start()

        logger.info(f'[{self.name}] Session started for slots: {", ".join(self._engines) or "none"}')

    async def stop(self) -> None:
        """Release every scoped resource and let in-flight transitions settle."""
        if not self._running:
            return
        self._running = False

        if self._scheduler is not None:
            if self._scheduler.get_job(self._job_id) is not None:
                self._scheduler.remove_job(self._job_id)
            if self._owns_scheduler and self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                self._scheduler = None

        if self._unsubscribe_override is not None:
            self._unsubscribe_override()
            self._unsubscribe_override = None

        if self.bridge is not None:
            await self.bridge.stop()

        closed = self._release_engines()
        await asyncio.gather(
            *(engine.wait_settled() for engine in closed),
            return_exceptions=True,
        )
        logger.info(f'[{self.name}] Session stopped')

    def _release_engines(self) -> list[ModeTransitionEngine]:
        """Return the engines this session was the last holder of."""
        closed = []
        for slot_id in self._engines:
            engine = self.state.engines.release(slot_id)
            if engine is not None:
                closed.append(engine)
        return closed

    async def check_schedule(self) -> None:
        """Periodic tick."""
        self.evaluate_all()

    def evaluate_all(self, now: Optional[datetime] = None) -> None:
        """Evaluate every observed slot. A failure stays scoped to its slot."""
        if not self._running:
            return
        now = now or self._clock()
        for slot_id, engine in list(self._engines.items()):
            try:
                engine.evaluate(now)
            except Exception as e:
                logger.error(f'[{self.name}] Evaluation failed for slot {slot_id}: {e}', exc_info=True)

    def _on_override_change(self, change: OverrideChange) -> None:
        logger.debug(f'[{self.name}] Override change {change.field}={change.value!r} ({change.origin.value})')
        self.evaluate_all()

    async def __aenter__(self) -> 'WebinarSession':
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()
