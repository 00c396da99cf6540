from dataclasses import dataclass, field
from typing import Iterable, Optional

from .activity_log import ActivityLog
from .config import Config
from .models import WebinarSlot
from .override import GlobalLiveOverride
from .slot_registry import SlotRegistry
from .transition_engine import EnginePool


@dataclass
class SessionState:
    """Shared mutable state handed to the transition engines and surfaces.

    Every session over the same state drives the same engine for a slot,
    taken from ``engines``.
    """

    config: Config = field(default_factory=Config)
    registry: SlotRegistry = field(default_factory=SlotRegistry)
    activity_log: Optional[ActivityLog] = None
    override: Optional[GlobalLiveOverride] = None
    engines: EnginePool = field(default_factory=EnginePool)

    def __post_init__(self):
        if self.activity_log is None:
            self.activity_log = ActivityLog(self.config.log_capacity)
        if self.override is None:
            self.override = GlobalLiveOverride(self.activity_log)

    @classmethod
    def with_slots(cls, slots: Iterable[WebinarSlot], config: Optional[Config] = None) -> 'SessionState':
        state = cls(config=config or Config())
        state.registry.initialize(slots)
        return state
