from switchover.activity_log import ActivityLog
from switchover.admin import AdminConsole, AdminGate
from switchover.config import Config, LoggerManager
from switchover.models import ActivityLogEntry, LogEvent, Mode, Origin, TransitionState, WebinarSlot
from switchover.override import GlobalLiveOverride
from switchover.realtime import InMemoryDocumentStore, RealtimeSyncBridge
from switchover.session import WebinarSession
from switchover.slot_registry import SlotRegistry
from switchover.state import SessionState
from switchover.transition_engine import ModeTransitionEngine, SlotPhase
from switchover.viewer import SurfaceStatus, ViewerSurface

__all__ = [
    'ActivityLog',
    'ActivityLogEntry',
    'AdminConsole',
    'AdminGate',
    'Config',
    'GlobalLiveOverride',
    'InMemoryDocumentStore',
    'LogEvent',
    'LoggerManager',
    'Mode',
    'ModeTransitionEngine',
    'Origin',
    'RealtimeSyncBridge',
    'SessionState',
    'SlotPhase',
    'SlotRegistry',
    'SurfaceStatus',
    'TransitionState',
    'ViewerSurface',
    'WebinarSession',
    'WebinarSlot',
]
