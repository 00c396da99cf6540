from __future__ import annotations

import asyncio
from datetime import timedelta, timezone

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from conftest import SETTLE, make_slot, make_state
from switchover.errors import SlotNotFoundError
from switchover.models import Mode
from switchover.session import WebinarSession
from switchover.transition_engine import SlotPhase


async def wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        assert asyncio.get_running_loop().time() < deadline, 'condition not reached'
        await asyncio.sleep(0.01)


async def test_first_schedule_check_runs_immediately(clock) -> None:
    state = make_state(make_slot(switch_in=timedelta(minutes=-1)))

    async with WebinarSession(state, ['slot-a'], settle_delay=SETTLE, clock=clock) as session:
        await wait_for(lambda: state.registry.get('slot-a').current_mode == Mode.LIVE)
        assert session.engine('slot-a').phase == SlotPhase.LIVE


async def test_override_change_only_moves_active_slot(clock) -> None:
    state = make_state(make_slot('slot-a'), make_slot('slot-b'))

    async with WebinarSession(state, settle_delay=SETTLE, clock=clock) as session:
        state.override.set_active_slot('slot-a')
        state.override.set(True)

        assert session.engine('slot-a').phase == SlotPhase.TRANSITIONING_TO_LIVE
        await session.engine('slot-a').wait_settled()

        assert state.registry.get('slot-a').current_mode == Mode.LIVE
        assert state.registry.get('slot-b').current_mode == Mode.REPLAY
        assert session.engine('slot-b').phase == SlotPhase.REPLAY


async def test_clock_reaching_switch_time_triggers_on_tick(clock) -> None:
    state = make_state(make_slot(switch_in=timedelta(minutes=75)))

    async with WebinarSession(state, settle_delay=SETTLE, clock=clock) as session:
        await session.check_schedule()
        assert session.engine('slot-a').phase == SlotPhase.REPLAY

        clock.advance(minutes=75)
        await session.check_schedule()
        assert session.engine('slot-a').phase == SlotPhase.TRANSITIONING_TO_LIVE


async def test_stop_releases_job_and_listener(clock) -> None:
    state = make_state()
    scheduler = AsyncIOScheduler(timezone=timezone.utc)
    session = WebinarSession(state, scheduler=scheduler, settle_delay=SETTLE, clock=clock, name='viewer')

    await session.start()
    assert len(scheduler.get_jobs()) == 1

    await session.stop()
    assert scheduler.get_jobs() == []
    assert not session.running

    state.override.set_active_slot('slot-a')
    state.override.set(True)
    assert session.engine('slot-a').phase == SlotPhase.REPLAY
    scheduler.shutdown(wait=False)


async def test_unknown_slot_fails_before_acquiring_anything(clock) -> None:
    state = make_state()
    session = WebinarSession(state, ['missing'], clock=clock)

    with pytest.raises(SlotNotFoundError):
        await session.start()
    assert not session.running


async def test_failing_slot_does_not_stop_other_slots(clock, monkeypatch) -> None:
    state = make_state(
        make_slot('slot-a', switch_in=timedelta(minutes=-1)),
        make_slot('slot-b', switch_in=timedelta(minutes=-1)),
    )

    async with WebinarSession(state, settle_delay=SETTLE, clock=clock) as session:
        def broken(now=None):
            raise RuntimeError('boom')

        monkeypatch.setattr(session.engine('slot-a'), 'evaluate', broken)
        session.evaluate_all()
        await session.engine('slot-b').wait_settled()

        assert state.registry.get('slot-b').current_mode == Mode.LIVE


async def test_sessions_on_one_state_share_engines(clock) -> None:
    state = make_state(make_slot('slot-a'), make_slot('slot-b'))
    first = WebinarSession(state, settle_delay=SETTLE, clock=clock, name='first')
    second = WebinarSession(state, ['slot-a'], settle_delay=SETTLE, clock=clock, name='second')
    await first.start()
    await second.start()

    engine = first.engine('slot-a')
    assert second.engine('slot-a') is engine
    assert state.engines.holders('slot-a') == 2

    await first.stop()
    assert state.engines.holders('slot-a') == 1
    assert 'slot-b' not in state.engines
    assert not engine.closed

    state.override.set_active_slot('slot-a')
    state.override.set(True)
    assert engine.phase == SlotPhase.TRANSITIONING_TO_LIVE

    await second.stop()
    assert engine.closed
    assert 'slot-a' not in state.engines
    assert state.registry.get('slot-a').current_mode == Mode.LIVE
