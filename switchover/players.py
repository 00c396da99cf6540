"""Player capability interfaces.

The transition engine never talks to a concrete video widget. Viewer surfaces
mount whichever player matches the committed mode through these interfaces
and receive telemetry back through :class:`PlayerCallbacks`.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol
from urllib.parse import parse_qs, urlparse

from .config import ROLE_ATTENDEE, ROLE_HOST
from .models import LogEvent, WebinarSlot
from .utils import extract_meeting_number, origin_of

logger = logging.getLogger(__name__)

MESSAGE_ATTENDEE_COUNT = 'attendee_count'
MESSAGE_CTA_CLICKED = 'cta_clicked'


@dataclass
class PlayerCallbacks:
    """Hooks a player calls back into its surface."""
    on_attendee_count: Callable[[int], None]
    on_event: Callable[[LogEvent, str, Optional[int]], None]


@dataclass(frozen=True)
class LiveSessionConfig:
    """Credentials for joining a live session."""
    meeting_number: str
    user_name: str
    user_email: str
    access_code: str = ''
    leave_url: str = ''
    role: int = ROLE_ATTENDEE

    def __post_init__(self):
        if self.role not in (ROLE_ATTENDEE, ROLE_HOST):
            raise ValueError(f'Unknown live session role: {self.role}')

    @property
    def is_host(self) -> bool:
        return self.role == ROLE_HOST

    @classmethod
    def for_slot(
        cls,
        slot: WebinarSlot,
        leave_url: str,
        user_name: str = 'Webinar Attendee',
        user_email: str = 'attendee@webinar.com',
        access_code: Optional[str] = None,
        role: int = ROLE_ATTENDEE,
    ) -> 'LiveSessionConfig':
        """Derive the meeting number (and access code, if not given) from the slot's live URL."""
        if access_code is None:
            query = parse_qs(urlparse(slot.live_url).query)
            access_code = query.get('pwd', [''])[0]
        return cls(
            meeting_number=extract_meeting_number(slot.live_url),
            user_name=user_name,
            user_email=user_email,
            access_code=access_code,
            leave_url=leave_url,
            role=role,
        )


class ReplayPlayer(Protocol):
    def mount(self, slot_id: str, replay_url: str, callbacks: PlayerCallbacks) -> None:
        """Render the replay content. Raises ReplayLoadError on failure."""

    def unmount(self) -> None:
        """Tear the player down."""


class LivePlayer(Protocol):
    def mount(self, slot_id: str, session: LiveSessionConfig, callbacks: PlayerCallbacks) -> None:
        """Initialize, join (or start, for hosts) the live session. Raises LiveSessionError on failure."""

    def unmount(self) -> None:
        """Leave the live session."""


@dataclass(frozen=True)
class WidgetMessage:
    type: str
    count: Optional[int] = None
    cta_name: Optional[str] = None


def parse_widget_message(origin: str, raw: Any, expected_url: str) -> Optional[WidgetMessage]:
    """Parse a message posted by an embedded replay widget.

    Messages from any origin other than ``expected_url``'s, non-JSON payloads
    and unknown types are untrusted and return None.
    """
    expected = origin_of(expected_url)
    if not expected or origin != expected:
        return None

    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
    else:
        data = raw
    if not isinstance(data, dict):
        return None

    kind = data.get('type')
    if kind == MESSAGE_ATTENDEE_COUNT:
        count = data.get('count')
        if isinstance(count, bool) or not isinstance(count, int) or count < 0:
            return None
        return WidgetMessage(kind, count=count)
    if kind == MESSAGE_CTA_CLICKED:
        name = data.get('ctaName')
        if not isinstance(name, str):
            return None
        return WidgetMessage(kind, cta_name=name)
    return None


def dispatch_widget_message(origin: str, raw: Any, expected_url: str, callbacks: PlayerCallbacks) -> bool:
    """Route a widget message to the player callbacks. Returns True if it was handled."""
    message = parse_widget_message(origin, raw, expected_url)
    if message is None:
        logger.debug(f'Ignoring widget message from {origin}')
        return False

    if message.type == MESSAGE_ATTENDEE_COUNT:
        callbacks.on_attendee_count(message.count)
    elif message.type == MESSAGE_CTA_CLICKED:
        callbacks.on_event(LogEvent.ADMIN_ACTION, f'CTA clicked: {message.cta_name}', None)
    return True
