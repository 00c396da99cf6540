"""Webinar slot, transition and activity-log records."""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class Mode(str, Enum):
    """Content mode shown to viewers of a slot."""
    REPLAY = 'replay'
    LIVE = 'live'


class LogEvent(str, Enum):
    """Kinds of activity-log entries."""
    ATTENDEE_JOINED = 'attendee_joined'
    ATTENDEE_LEFT = 'attendee_left'
    MODE_SWITCHED = 'mode_switched'
    ADMIN_ACTION = 'admin_action'


class Origin(str, Enum):
    """Where a state change came from."""
    LOCAL = 'local'
    REMOTE = 'remote'


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """Accept a datetime or an ISO-8601 string and return an aware datetime."""
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value)
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass
class WebinarSlot:
    """One schedulable webinar occurrence."""
    id: str
    name: str
    replay_url: str
    live_url: str
    scheduled_start_time: datetime
    scheduled_switch_time: datetime
    is_active: bool = True
    current_mode: Mode = Mode.REPLAY
    attendee_count: int = 0
    last_switch_time: Optional[datetime] = None

    def __post_init__(self):
        self.scheduled_start_time = parse_timestamp(self.scheduled_start_time)
        self.scheduled_switch_time = parse_timestamp(self.scheduled_switch_time)
        if self.last_switch_time is not None:
            self.last_switch_time = parse_timestamp(self.last_switch_time)
        self.current_mode = Mode(self.current_mode)
        if self.attendee_count < 0:
            raise ValueError(f'attendee_count must be non-negative, got {self.attendee_count}')

    @classmethod
    def from_dict(cls, data: dict) -> 'WebinarSlot':
        """Build a slot from the camelCase layout used by schedule feeds."""
        return cls(
            id=data['id'],
            name=data['name'],
            replay_url=data.get('everwebinarUrl', data.get('replay_url', '')),
            live_url=data.get('zoomUrl', data.get('live_url', '')),
            scheduled_start_time=data.get('scheduledStartTime', data.get('scheduled_start_time')),
            scheduled_switch_time=data.get('scheduledSwitchTime', data.get('scheduled_switch_time')),
            is_active=data.get('isActive', data.get('is_active', True)),
            current_mode=data.get('currentMode', data.get('current_mode', Mode.REPLAY)),
            attendee_count=data.get('attendeeCount', data.get('attendee_count', 0)),
            last_switch_time=data.get('lastSwitchTime', data.get('last_switch_time')),
        )

    def to_dict(self) -> dict:
        data = {
            'id': self.id,
            'name': self.name,
            'everwebinarUrl': self.replay_url,
            'zoomUrl': self.live_url,
            'scheduledStartTime': self.scheduled_start_time.isoformat(),
            'scheduledSwitchTime': self.scheduled_switch_time.isoformat(),
            'isActive': self.is_active,
            'currentMode': self.current_mode.value,
            'attendeeCount': self.attendee_count,
        }
        if self.last_switch_time is not None:
            data['lastSwitchTime'] = self.last_switch_time.isoformat()
        return data


@dataclass
class TransitionState:
    """Ephemeral per-surface transition notice.

    ``is_transitioning`` is False whenever no mode change is in flight.
    """
    is_transitioning: bool = False
    transition_message: str = ''
    target_mode: Mode = Mode.REPLAY


@dataclass(frozen=True)
class ActivityLogEntry:
    """Immutable activity-log record."""
    id: str
    slot_id: str
    timestamp: datetime
    event: LogEvent
    details: str
    attendee_count: Optional[int] = None

    def to_dict(self) -> dict:
        """Persisted layout: slotId, ISO-8601 timestamp, event, details, attendeeCount?"""
        data = {
            'slotId': self.slot_id,
            'timestamp': self.timestamp.isoformat(),
            'event': self.event.value,
            'details': self.details,
        }
        if self.attendee_count is not None:
            data['attendeeCount'] = self.attendee_count
        return data


@dataclass
class AdminState:
    """Admin-state document shared across sessions."""
    is_go_live_enabled: bool = False
    active_slot_id: Optional[str] = None
    override_engaged: bool = False

    def to_dict(self) -> dict:
        return {
            'isGoLiveEnabled': self.is_go_live_enabled,
            'activeSlotId': self.active_slot_id,
            'overrideEngaged': self.override_engaged,
        }


