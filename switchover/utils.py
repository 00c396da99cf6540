"""Shared helper functions."""

import re
import secrets
import string
import time
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse

from .models import parse_timestamp

_ID_ALPHABET = string.ascii_lowercase + string.digits

# Checked in order; the last one matches a bare meeting number
_MEETING_NUMBER_PATTERNS = (
    re.compile(r'/j/(\d+)'),
    re.compile(r'meeting/(\d+)'),
    re.compile(r'(\d{9,})'),
)

REPLAY_HOSTS = ('everwebinar.com', 'webinarjam.com')
LIVE_HOSTS = ('zoom.us',)


def generate_id() -> str:
    """Return a unique id of the form ``<epoch-ms>_<9 random chars>``."""
    suffix = ''.join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f'{int(time.time() * 1000)}_{suffix}'


def _to_datetime(value) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except (TypeError, ValueError):
        return None


def format_datetime(value) -> str:
    """Format a timestamp as e.g. ``Mar 05, 2025 14:30``."""
    dt = _to_datetime(value)
    if dt is None:
        return 'Invalid date'
    return dt.strftime('%b %d, %Y %H:%M')


def time_remaining(value, now: Optional[datetime] = None) -> str:
    """Human-readable time left until ``value``."""
    target = _to_datetime(value)
    if target is None:
        return 'Invalid date'

    now = now or datetime.now(timezone.utc)
    diff = (target - now).total_seconds()
    if diff <= 0:
        return 'Time has passed'

    hours = int(diff // 3600)
    minutes = int((diff % 3600) // 60)
    if hours > 0:
        return f'{hours}h {minutes}m remaining'
    return f'{minutes}m remaining'


def extract_meeting_number(live_url: str) -> str:
    """Pull the meeting number out of a live-session URL, or '' if none."""
    for pattern in _MEETING_NUMBER_PATTERNS:
        match = pattern.search(live_url or '')
        if match:
            return match.group(1)
    return ''


def _host_matches(url: str, hosts: tuple[str, ...]) -> bool:
    try:
        hostname = urlparse(url).hostname
    except (ValueError, AttributeError):
        return False
    if not hostname:
        return False
    return any(hostname == host or hostname.endswith('.' + host) for host in hosts)


def is_valid_replay_url(url: str) -> bool:
    return _host_matches(url, REPLAY_HOSTS)


def is_valid_live_url(url: str) -> bool:
    return _host_matches(url, LIVE_HOSTS)


def origin_of(url: str) -> str:
    """Return ``scheme://host[:port]`` for a URL, or '' when it has none."""
    try:
        parsed = urlparse(url)
    except (ValueError, AttributeError):
        return ''
    if not parsed.scheme or not parsed.netloc:
        return ''
    return f'{parsed.scheme}://{parsed.netloc}'
