from __future__ import annotations

from switchover.activity_log import ActivityLog
from switchover.models import LogEvent, Origin
from switchover.override import ACTIVE_SLOT, ENGAGED, GO_LIVE, GlobalLiveOverride


def test_set_logs_admin_action_for_active_slot() -> None:
    log = ActivityLog()
    override = GlobalLiveOverride(log)
    override.set_active_slot('slot-a')

    override.set(True)

    entry = log.recent(1)[0]
    assert entry.slot_id == 'slot-a'
    assert entry.event == LogEvent.ADMIN_ACTION
    assert entry.details == 'Go Live enabled'


def test_set_without_active_slot_logs_system_entry() -> None:
    log = ActivityLog()
    override = GlobalLiveOverride(log)

    override.set(False)

    assert log.recent(1)[0].slot_id == 'system'
    assert log.recent(1)[0].details == 'Go Live disabled'


def test_forcing_requires_active_slot_and_engagement() -> None:
    override = GlobalLiveOverride(ActivityLog())
    override.set_active_slot('slot-a')

    assert not override.forces_live('slot-a')
    assert not override.forces_replay('slot-a')

    override.set(True)
    assert override.forces_live('slot-a')
    assert not override.forces_live('slot-b')

    override.set(False)
    assert override.forces_replay('slot-a')
    assert not override.forces_replay('slot-b')


def test_changes_carry_origin() -> None:
    override = GlobalLiveOverride(ActivityLog())
    changes = []
    override.subscribe(changes.append)

    override.set_active_slot('slot-a', origin=Origin.REMOTE)
    override.set(True)

    assert [(c.field, c.value, c.origin) for c in changes] == [
        (ACTIVE_SLOT, 'slot-a', Origin.REMOTE),
        (GO_LIVE, True, Origin.LOCAL),
    ]
    assert override.snapshot().to_dict() == {
        'isGoLiveEnabled': True,
        'activeSlotId': 'slot-a',
        'overrideEngaged': True,
    }


def test_mark_engaged_holds_active_slot_without_logging() -> None:
    log = ActivityLog()
    override = GlobalLiveOverride(log)
    override.set_active_slot('slot-a')
    changes = []
    override.subscribe(changes.append)

    override.mark_engaged()
    override.mark_engaged()

    assert override.forces_replay('slot-a')
    assert not override.enabled
    assert len(log) == 0
    assert [(c.field, c.origin) for c in changes] == [(ENGAGED, Origin.REMOTE)]
