from __future__ import annotations

from datetime import timedelta

from conftest import SETTLE, make_slot, make_state
from switchover.models import LogEvent, Mode
from switchover.realtime import InMemoryDocumentStore, RealtimeSyncBridge
from switchover.session import WebinarSession
from switchover.transition_engine import ModeTransitionEngine, SlotPhase


class CountingStore(InMemoryDocumentStore):
    def __init__(self):
        super().__init__()
        self.updates: list[tuple[str, dict]] = []

    async def update(self, key, fields):
        self.updates.append((key, dict(fields)))
        await super().update(key, fields)


class FailingStore(InMemoryDocumentStore):
    async def update(self, key, fields):
        raise ConnectionError('store unreachable')

    async def append(self, collection, entry_id, entry):
        raise ConnectionError('store unreachable')


async def test_remote_change_is_applied_without_echo() -> None:
    store = CountingStore()
    first, second = make_state(), make_state()
    bridge_a = RealtimeSyncBridge(first, store)
    bridge_b = RealtimeSyncBridge(second, store)
    bridge_a.start()
    bridge_b.start()

    first.override.set_active_slot('slot-a')
    first.override.set(True)
    await bridge_a.flush()
    await bridge_b.flush()

    assert second.override.active_slot_id == 'slot-a'
    assert second.override.enabled
    assert store.updates == [
        ('admin/state', {'activeSlotId': 'slot-a'}),
        ('admin/state', {'isGoLiveEnabled': True, 'overrideEngaged': True}),
    ]
    assert store.document('admin/state') == {
        'activeSlotId': 'slot-a',
        'isGoLiveEnabled': True,
        'overrideEngaged': True,
    }

    await bridge_a.stop()
    await bridge_b.stop()


async def test_initial_snapshot_is_applied_on_start() -> None:
    store = InMemoryDocumentStore()
    await store.update('admin/state', {'isGoLiveEnabled': True, 'activeSlotId': 'slot-a'})
    state = make_state()

    bridge = RealtimeSyncBridge(state, store)
    bridge.start()

    assert state.override.enabled
    assert state.override.active_slot_id == 'slot-a'
    await bridge.stop()


async def test_untouched_remote_default_does_not_engage_override() -> None:
    store = InMemoryDocumentStore()
    await store.update('admin/state', {'isGoLiveEnabled': False, 'activeSlotId': None})
    state = make_state()

    bridge = RealtimeSyncBridge(state, store)
    bridge.start()

    assert not state.override.engaged
    await bridge.stop()


async def test_malformed_remote_payload_is_ignored() -> None:
    store = InMemoryDocumentStore()
    state = make_state()
    bridge = RealtimeSyncBridge(state, store)
    bridge.start()

    await store.update('admin/state', {'isGoLiveEnabled': 'yes', 'activeSlotId': 42})

    assert not state.override.enabled
    assert state.override.active_slot_id is None
    await bridge.stop()


async def test_log_entries_are_mirrored_once() -> None:
    store = InMemoryDocumentStore()
    first, second = make_state(), make_state()
    bridge_a = RealtimeSyncBridge(first, store)
    bridge_b = RealtimeSyncBridge(second, store)
    bridge_a.start()
    bridge_b.start()

    first.override.set(True)
    await bridge_a.flush()
    await bridge_b.flush()

    entries = list(store.entries('logs').values())
    admin_actions = [e for e in entries if e['event'] == LogEvent.ADMIN_ACTION.value]
    assert len(admin_actions) == 1
    assert admin_actions[0]['details'] == 'Go Live enabled'
    assert len(second.activity_log) == 1

    await bridge_a.stop()
    await bridge_b.stop()


async def test_write_failures_leave_local_state_in_effect(caplog) -> None:
    state = make_state()
    bridge = RealtimeSyncBridge(state, FailingStore())
    bridge.start()

    state.override.set(True)
    await bridge.flush()

    assert state.override.enabled
    assert 'failed to update admin state' in caplog.text
    await bridge.stop()


async def test_stop_unsubscribes_everything() -> None:
    store = InMemoryDocumentStore()
    state = make_state()
    bridge = RealtimeSyncBridge(state, store)
    bridge.start()
    assert store.subscriber_count('admin/state') == 1

    await bridge.stop()
    assert store.subscriber_count('admin/state') == 0

    state.override.set(True)
    await store.update('admin/state', {'activeSlotId': 'slot-a'})
    assert store.document('admin/state') == {'activeSlotId': 'slot-a'}
    assert state.override.active_slot_id is None


async def test_second_session_switches_slot_live(clock) -> None:
    store = InMemoryDocumentStore()
    admin_state = make_state(make_slot('slot-a'))
    viewer_state = make_state(make_slot('slot-a'))
    admin_bridge = RealtimeSyncBridge(admin_state, store)
    admin_bridge.start()

    viewer_bridge = RealtimeSyncBridge(viewer_state, store)
    async with WebinarSession(viewer_state, bridge=viewer_bridge, settle_delay=SETTLE, clock=clock) as session:
        admin_state.override.set_active_slot('slot-a')
        admin_state.override.set(True)
        await admin_bridge.flush()

        engine = session.engine('slot-a')
        assert engine.phase == SlotPhase.TRANSITIONING_TO_LIVE
        await engine.wait_settled()
        assert viewer_state.registry.get('slot-a').current_mode == Mode.LIVE

    assert store.subscriber_count('admin/state') == 1
    await admin_bridge.stop()


async def test_late_joiner_inherits_engaged_override(clock) -> None:
    store = InMemoryDocumentStore()
    early = make_state(make_slot('slot-a', switch_in=timedelta(minutes=-1)))
    early_bridge = RealtimeSyncBridge(early, store)
    early_bridge.start()
    early.override.set_active_slot('slot-a')
    early.override.set(False)
    await early_bridge.flush()

    late = make_state(make_slot('slot-a', switch_in=timedelta(minutes=-1)))
    late_bridge = RealtimeSyncBridge(late, store)
    late_bridge.start()

    assert late.override.engaged
    assert store.document('admin/state')['overrideEngaged'] is True
    assert ModeTransitionEngine(early, 'slot-a', SETTLE, clock).decide() is None
    assert ModeTransitionEngine(late, 'slot-a', SETTLE, clock).decide() is None
    # Engaging from the document is not an admin action
    assert len(late.activity_log) == 0

    await early_bridge.stop()
    await late_bridge.stop()


async def test_malformed_engaged_value_is_ignored() -> None:
    store = InMemoryDocumentStore()
    await store.update('admin/state', {'activeSlotId': 'slot-a', 'overrideEngaged': 'yes'})
    state = make_state()

    bridge = RealtimeSyncBridge(state, store)
    bridge.start()

    assert state.override.active_slot_id == 'slot-a'
    assert not state.override.engaged
    await bridge.stop()
