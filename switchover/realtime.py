"""Realtime sync bridge.

Makes the Global Live Override and the active-slot selection converge across
independent sessions through a document store:

- Local changes are written to the admin-state document. Write failures are
  logged; local state has already taken effect.
- Remote changes are applied through the same override operations with
  ``Origin.REMOTE``, which the bridge never writes back out.
- Setting the Go Live flag also writes ``overrideEngaged``, so sessions that
  connect later hold the active slot in replay exactly like the ones that saw
  the change happen.
- Local activity-log entries are mirrored into a write-only log collection.

The subscription is acquired in :meth:`RealtimeSyncBridge.start` and released
in :meth:`RealtimeSyncBridge.stop`.
"""

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from .config import MESSAGES
from .models import ActivityLogEntry, LogEvent, Origin
from .override import ACTIVE_SLOT, ENGAGED, GO_LIVE, OverrideChange
from .state import SessionState

logger = logging.getLogger(__name__)

# Admin-state document fields
FIELD_GO_LIVE = 'isGoLiveEnabled'
FIELD_ACTIVE_SLOT = 'activeSlotId'
FIELD_ENGAGED = 'overrideEngaged'

_NETWORK_ERROR = MESSAGES['errors']['network_error']

_DOCUMENT_FIELDS = {
    GO_LIVE: FIELD_GO_LIVE,
    ACTIVE_SLOT: FIELD_ACTIVE_SLOT,
    ENGAGED: FIELD_ENGAGED,
}


class DocumentStore(Protocol):
    """Remote document store addressed by key."""

    def subscribe(self, key: str, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Call ``callback`` with the current value and on every change. Returns an unsubscribe function."""

    async def update(self, key: str, fields: dict) -> None:
        """Merge ``fields`` into the document at ``key``."""

    async def append(self, collection: str, entry_id: str, entry: dict) -> None:
        """Write ``entry`` under ``entry_id`` in ``collection``."""


class InMemoryDocumentStore:
    """Process-local document store.

    Connects sessions that live in the same process; subscribers are notified
    synchronously from :meth:`update`.
    """

    def __init__(self):
        self._documents: dict[str, dict] = {}
        self._subscribers: dict[str, list[Callable[[dict], None]]] = {}
        self._collections: dict[str, dict[str, dict]] = {}

    def document(self, key: str) -> dict:
        return copy.deepcopy(self._documents.get(key, {}))

    def entries(self, collection: str) -> dict[str, dict]:
        return copy.deepcopy(self._collections.get(collection, {}))

    def subscribe(self, key: str, callback: Callable[[dict], None]) -> Callable[[], None]:
        self._subscribers.setdefault(key, []).append(callback)
        self._deliver(callback, key)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(key, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, key: str) -> int:
        return len(self._subscribers.get(key, []))

    async def update(self, key: str, fields: dict) -> None:
        self._documents.setdefault(key, {}).update(copy.deepcopy(fields))
        for callback in list(self._subscribers.get(key, [])):
            self._deliver(callback, key)

    async def append(self, collection: str, entry_id: str, entry: dict) -> None:
        self._collections.setdefault(collection, {})[entry_id] = copy.deepcopy(entry)

    def _deliver(self, callback: Callable[[dict], None], key: str) -> None:
        try:
            callback(self.document(key))
        except Exception as e:
            logger.error(f'Document subscriber for {key} failed: {e}', exc_info=True)


class RealtimeSyncBridge:
    """Propagates override changes between the local session and a document store."""

    def __init__(
        self,
        state: SessionState,
        store: DocumentStore,
        admin_doc: Optional[str] = None,
        log_collection: Optional[str] = None,
        mirror_logs: bool = True,
    ):
        self.state = state
        self.store = store
        self.admin_doc = admin_doc or state.config.admin_doc
        self.log_collection = log_collection or state.config.log_collection
        self.mirror_logs = mirror_logs
        self._unsubscribers: list[Callable[[], None]] = []
        self._pending: set[asyncio.Task] = set()
        self._applying_remote = False
        self._started = False

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        """Subscribe to the admin-state document and to local changes."""
        if self._started:
            return
        self._started = True

        self._unsubscribers.append(self.state.override.subscribe(self._on_local_change))
        if self.mirror_logs:
            self._unsubscribers.append(self.state.activity_log.subscribe(self._on_log_entry))
        try:
            self._unsubscribers.append(self.store.subscribe(self.admin_doc, self._on_remote_change))
        except Exception as e:
            logger.error(f'Failed to subscribe to {self.admin_doc}: {e}')
        logger.info(f'Realtime sync started on {self.admin_doc}')

    async def stop(self) -> None:
        """Release every subscription and flush pending writes."""
        if not self._started:
            return
        self._started = False

        for unsubscribe in self._unsubscribers:
            try:
                unsubscribe()
            except Exception as e:
                logger.warning(f'Error while unsubscribing: {e}')
        self._unsubscribers.clear()

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        logger.info(f'Realtime sync stopped on {self.admin_doc}')

    async def flush(self) -> None:
        """Wait for every write issued so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_remote_change(self, data: Any) -> None:
        if not isinstance(data, dict):
            logger.debug(f'Ignoring malformed admin-state payload: {data!r}')
            return

        override = self.state.override
        self._applying_remote = True
        try:
            # Active slot first so the go-live log entry is attributed to it
            if FIELD_ACTIVE_SLOT in data:
                slot_id = data[FIELD_ACTIVE_SLOT]
                if slot_id is not None and not isinstance(slot_id, str):
                    logger.debug(f'Ignoring malformed {FIELD_ACTIVE_SLOT}: {slot_id!r}')
                elif slot_id != override.active_slot_id:
                    override.set_active_slot(slot_id, origin=Origin.REMOTE)

            if FIELD_GO_LIVE in data:
                enabled = data[FIELD_GO_LIVE]
                if not isinstance(enabled, bool):
                    logger.debug(f'Ignoring malformed {FIELD_GO_LIVE}: {enabled!r}')
                elif enabled != override.enabled:
                    override.set(enabled, origin=Origin.REMOTE)

            # After the flag, so a snapshot never looks engaged with a stale flag
            if FIELD_ENGAGED in data:
                engaged = data[FIELD_ENGAGED]
                if not isinstance(engaged, bool):
                    logger.debug(f'Ignoring malformed {FIELD_ENGAGED}: {engaged!r}')
                elif engaged and not override.engaged:
                    override.mark_engaged(origin=Origin.REMOTE)
        finally:
            self._applying_remote = False

    def _on_local_change(self, change: OverrideChange) -> None:
        if change.origin == Origin.REMOTE:
            return
        field = _DOCUMENT_FIELDS.get(change.field)
        if field is None:
            return
        fields = {field: change.value}
        if change.field == GO_LIVE:
            # Setting the flag engages the override for every session
            fields[FIELD_ENGAGED] = True
        self._spawn(self._write_admin_state(fields))

    def _on_log_entry(self, entry: ActivityLogEntry) -> None:
        # The session that made the admin change already mirrored it
        if self._applying_remote and entry.event == LogEvent.ADMIN_ACTION:
            return
        self._spawn(self._write_log_entry(entry))

    async def _write_admin_state(self, fields: dict) -> None:
        try:
            await self.store.update(self.admin_doc, fields)
        except Exception as e:
            logger.error(f'{_NETWORK_ERROR}: failed to update admin state {fields}: {e}')

    async def _write_log_entry(self, entry: ActivityLogEntry) -> None:
        try:
            await self.store.append(self.log_collection, entry.id, entry.to_dict())
        except Exception as e:
            logger.error(f'{_NETWORK_ERROR}: failed to log event {entry.id}: {e}')

    def _spawn(self, coro: Awaitable[None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning('No running event loop, dropping realtime write')
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

