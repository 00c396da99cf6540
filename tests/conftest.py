from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from switchover.config import Config
from switchover.errors import SurfaceError
from switchover.models import Mode, WebinarSlot
from switchover.state import SessionState

NOW = datetime(2025, 3, 5, 12, 0, tzinfo=timezone.utc)
SETTLE = 0.01


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakePlayer:
    """Records mounts and can be told to fail the next one."""

    def __init__(self):
        self.mounts: list[tuple] = []
        self.unmounts = 0
        self.fail_with: SurfaceError | None = None
        self.callbacks = None

    def mount(self, slot_id, source, callbacks) -> None:
        self.callbacks = callbacks
        self.mounts.append((slot_id, source))
        if self.fail_with is not None:
            error, self.fail_with = self.fail_with, None
            raise error

    def unmount(self) -> None:
        self.unmounts += 1


def make_slot(slot_id: str = 'slot-a', switch_in: timedelta = timedelta(minutes=75), **kwargs) -> WebinarSlot:
    fields = dict(
        id=slot_id,
        name=f'Webinar {slot_id}',
        replay_url=f'https://demo.everwebinar.com/session/{slot_id}',
        live_url='https://zoom.us/j/123456789?pwd=secret',
        scheduled_start_time=NOW - timedelta(minutes=5),
        scheduled_switch_time=NOW + switch_in,
        current_mode=Mode.REPLAY,
    )
    fields.update(kwargs)
    return WebinarSlot(**fields)


def make_state(*slots: WebinarSlot) -> SessionState:
    return SessionState.with_slots(slots or [make_slot()], config=Config())


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in (
        'SWITCHOVER_SETTLE_DELAY',
        'SWITCHOVER_CHECK_INTERVAL',
        'SWITCHOVER_LOG_CAPACITY',
        'SWITCHOVER_RECENT_LOGS',
        'SWITCHOVER_ADMIN_PASSWORD',
        'SWITCHOVER_ADMIN_DOC',
    ):
        monkeypatch.delenv(name, raising=False)
