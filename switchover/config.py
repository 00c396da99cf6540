"""Configuration module for the switchover core."""

import os
import logging
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T', int, float)


def _parse_env(
    name: str,
    default: T,
    type_fn: type,
    min_val: T | None = None,
    max_val: T | None = None,
) -> T:
    """Parse and validate an environment variable.

    Args:
        name: Environment variable name
        default: Default value if not set or invalid
        type_fn: Type conversion function (int, float)
        min_val: Minimum allowed value (inclusive)
        max_val: Maximum allowed value (inclusive)

    Returns:
        Parsed and validated value, or default on error
    """
    raw = os.environ.get(name, '')
    if not raw:
        return default

    try:
        val = type_fn(raw)
        if min_val is not None and val < min_val:
            logger.warning(f'{name}={val} below minimum {min_val}, using {min_val}')
            return min_val
        if max_val is not None and val > max_val:
            logger.warning(f'{name}={val} above maximum {max_val}, using {max_val}')
            return max_val
        return val
    except (ValueError, TypeError) as e:
        logger.warning(f'Invalid {name}={raw!r}: {e}, using default {default}')
        return default


# Defaults
DEFAULT_SETTLE_DELAY = 2.0
DEFAULT_CHECK_INTERVAL = 60
DEFAULT_LOG_CAPACITY = 100
DEFAULT_RECENT_LOGS = 10
DEFAULT_SERVER_PORT = 8095
SYSTEM_SLOT_ID = 'system'

# Live session roles
ROLE_ATTENDEE = 0
ROLE_HOST = 1

MESSAGES = {
    'errors': {
        'live_init_failed': 'Failed to initialize live session',
        'replay_load_failed': 'Failed to load replay session',
        'network_error': 'Network connection error',
        'invalid_slot': 'Invalid webinar slot',
        'unauthorized': 'Unauthorized access',
    },
    'success': {
        'live_connected': 'Successfully connected to live session',
        'replay_loaded': 'Replay session loaded',
        'mode_switched': 'Successfully switched modes',
    },
}


class Config:
    """Configuration loaded from environment variables."""

    def __init__(self):
        self.settle_delay = _parse_env('SWITCHOVER_SETTLE_DELAY', DEFAULT_SETTLE_DELAY, float, min_val=0.0, max_val=60.0)
        self.check_interval = _parse_env('SWITCHOVER_CHECK_INTERVAL', DEFAULT_CHECK_INTERVAL, int, min_val=1, max_val=3600)
        self.log_capacity = _parse_env('SWITCHOVER_LOG_CAPACITY', DEFAULT_LOG_CAPACITY, int, min_val=1, max_val=10000)
        self.recent_logs = _parse_env('SWITCHOVER_RECENT_LOGS', DEFAULT_RECENT_LOGS, int, min_val=1, max_val=1000)
        self.server_port = _parse_env('SWITCHOVER_SERVER_PORT', DEFAULT_SERVER_PORT, int, min_val=1, max_val=65535)

        self.admin_password = os.environ.get('SWITCHOVER_ADMIN_PASSWORD', 'admin123')
        self.realtime_url = os.environ.get('SWITCHOVER_REALTIME_URL', 'http://localhost:8095').rstrip('/')
        self.admin_doc = os.environ.get('SWITCHOVER_ADMIN_DOC', 'admin/state')
        self.log_collection = os.environ.get('SWITCHOVER_LOG_COLLECTION', 'logs')
        self.app_url = os.environ.get('SWITCHOVER_APP_URL', 'http://localhost:3000')

        # Log levels for each component
        self.log_level_engine = os.environ.get('SWITCHOVER_LOG_LEVEL_ENGINE', 'INFO').upper()
        self.log_level_sync = os.environ.get('SWITCHOVER_LOG_LEVEL_SYNC', 'WARN').upper()
        self.log_level_surface = os.environ.get('SWITCHOVER_LOG_LEVEL_SURFACE', 'INFO').upper()
        self.log_level_admin = os.environ.get('SWITCHOVER_LOG_LEVEL_ADMIN', 'INFO').upper()
        self.log_level_server = os.environ.get('SWITCHOVER_LOG_LEVEL_SERVER', 'INFO').upper()


class LoggerManager:
    """Manages the per-concern loggers."""

    def __init__(self, config: Config):
        self.config = config
        self._setup_loggers()

    def _setup_loggers(self) -> None:
        """Initialize and configure loggers."""
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s [%(name)s] %(levelname)s: %(message)s'))
        handler.setLevel(logging.DEBUG)
        handler._switchover = True

        # Quiet down third-party logging
        for name in ('httpx', 'httpcore', 'apscheduler'):
            logging.getLogger(name).setLevel(logging.WARNING)

        # Modules log under their own names; group them by concern
        concerns = [
            (('switchover.transition_engine', 'switchover.session'), self.config.log_level_engine),
            (('switchover.realtime', 'switchover.http_transport'), self.config.log_level_sync),
            (('switchover.viewer', 'switchover.players'), self.config.log_level_surface),
            (('switchover.admin', 'switchover.override'), self.config.log_level_admin),
            (('switchover.state_server',), self.config.log_level_server),
        ]
        for names, level in concerns:
            for name in names:
                named = logging.getLogger(name)
                named.handlers = [h for h in named.handlers if not getattr(h, '_switchover', False)]
                named.addHandler(handler)
                named.setLevel(level)
                named.propagate = False
