from __future__ import annotations

import json

import pytest

from conftest import make_slot
from switchover.config import ROLE_HOST
from switchover.models import LogEvent
from switchover.players import LiveSessionConfig, PlayerCallbacks, dispatch_widget_message, parse_widget_message

REPLAY_URL = 'https://demo.everwebinar.com/session/sales-training-12345'
REPLAY_ORIGIN = 'https://demo.everwebinar.com'


def test_live_session_config_from_slot() -> None:
    slot = make_slot(live_url='https://zoom.us/j/987654321?pwd=abc123')

    session = LiveSessionConfig.for_slot(slot, leave_url='http://localhost:3000')

    assert session.meeting_number == '987654321'
    assert session.access_code == 'abc123'
    assert session.user_name == 'Webinar Attendee'
    assert not session.is_host


def test_live_session_config_rejects_unknown_role() -> None:
    assert LiveSessionConfig('1', 'Host', 'h@example.com', role=ROLE_HOST).is_host
    with pytest.raises(ValueError):
        LiveSessionConfig('1', 'Someone', 's@example.com', role=7)


def test_widget_messages_from_expected_origin() -> None:
    count = parse_widget_message(REPLAY_ORIGIN, json.dumps({'type': 'attendee_count', 'count': 42}), REPLAY_URL)
    cta = parse_widget_message(REPLAY_ORIGIN, {'type': 'cta_clicked', 'ctaName': 'Buy now'}, REPLAY_URL)

    assert count.count == 42
    assert cta.cta_name == 'Buy now'


def test_untrusted_or_malformed_widget_messages_are_dropped() -> None:
    assert parse_widget_message('https://evil.example', '{"type": "attendee_count", "count": 1}', REPLAY_URL) is None
    assert parse_widget_message(REPLAY_ORIGIN, 'not json', REPLAY_URL) is None
    assert parse_widget_message(REPLAY_ORIGIN, '{"type": "attendee_count", "count": -3}', REPLAY_URL) is None
    assert parse_widget_message(REPLAY_ORIGIN, '{"type": "attendee_count", "count": true}', REPLAY_URL) is None
    assert parse_widget_message(REPLAY_ORIGIN, '{"type": "unknown"}', REPLAY_URL) is None
    assert parse_widget_message(REPLAY_ORIGIN, '[1, 2]', REPLAY_URL) is None


def test_dispatch_routes_to_callbacks() -> None:
    counts, events = [], []
    callbacks = PlayerCallbacks(
        on_attendee_count=counts.append,
        on_event=lambda event, details, count: events.append((event, details, count)),
    )

    assert dispatch_widget_message(REPLAY_ORIGIN, '{"type": "attendee_count", "count": 5}', REPLAY_URL, callbacks)
    assert dispatch_widget_message(REPLAY_ORIGIN, '{"type": "cta_clicked", "ctaName": "Book"}', REPLAY_URL, callbacks)
    assert not dispatch_widget_message('https://evil.example', '{"type": "attendee_count", "count": 9}', REPLAY_URL, callbacks)

    assert counts == [5]
    assert events == [(LogEvent.ADMIN_ACTION, 'CTA clicked: Book', None)]
