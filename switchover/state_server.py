"""Admin-state document server.

Small Quart app that plays the realtime transport for sessions using
:class:`~switchover.http_transport.HttpDocumentStore`. Serve it with any ASGI
server, e.g. ``hypercorn 'switchover.state_server:create_app()'``.
"""

import asyncio
import copy
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from quart import Quart, jsonify, request

from .config import Config, LoggerManager
from .models import AdminState

logger = logging.getLogger(__name__)

SSE_KEEPALIVE_SECONDS = 15.0
SSE_QUEUE_SIZE = 100
COLLECTION_LIMIT = 1000


@dataclass
class DocumentHub:
    """Documents, their SSE listeners and the append-only collections."""

    documents: dict[str, dict] = field(default_factory=dict)
    listeners: dict[str, set[asyncio.Queue]] = field(default_factory=dict)
    collections: dict[str, deque] = field(default_factory=dict)

    def snapshot(self, key: str) -> dict:
        return copy.deepcopy(self.documents.get(key, {}))

    def update(self, key: str, fields: dict) -> dict:
        self.documents.setdefault(key, {}).update(fields)
        snapshot = self.snapshot(key)
        for queue in list(self.listeners.get(key, ())):
            try:
                queue.put_nowait(snapshot)
            except asyncio.QueueFull:
                logger.warning(f'Dropping update for slow listener on {key}')
        return snapshot

    def append(self, collection: str, entry_id: str, entry: dict) -> None:
        entries = self.collections.setdefault(collection, deque(maxlen=COLLECTION_LIMIT))
        entries.append({'id': entry_id, **entry})

    def recent(self, collection: str, limit: Optional[int] = None) -> list[dict]:
        entries = list(self.collections.get(collection, ()))
        entries.reverse()
        return entries[:limit] if limit is not None else entries


def create_app(config: Optional[Config] = None, hub: Optional[DocumentHub] = None) -> Quart:
    """Create the document server app."""
    config = config or Config()
    hub = hub or DocumentHub()
    app = Quart(__name__)
    app.config['DOCUMENT_HUB'] = hub

    # Seed the admin-state document so the first subscriber sees a full snapshot
    hub.documents.setdefault(config.admin_doc, AdminState().to_dict())

    @app.route('/health')
    async def health():
        """Health check endpoint."""
        return {'status': 'ok'}

    @app.route('/documents/<path:key>', methods=['GET'])
    async def get_document(key: str):
        return jsonify(hub.snapshot(key))

    @app.route('/documents/<path:key>', methods=['PATCH'])
    async def patch_document(key: str):
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            return 'Bad request', 400
        snapshot = hub.update(key, data)
        logger.info(f'{key} updated: {data}')
        return jsonify(snapshot)

    @app.route('/collections/<name>/<entry_id>', methods=['PUT'])
    async def put_entry(name: str, entry_id: str):
        data = await request.get_json(silent=True)
        if not isinstance(data, dict):
            return 'Bad request', 400
        hub.append(name, entry_id, data)
        return 'OK', 200

    @app.route('/collections/<name>', methods=['GET'])
    async def list_entries(name: str):
        limit = request.args.get('limit', type=int)
        return jsonify(hub.recent(name, limit))

    @app.route('/events/<path:key>', methods=['GET'])
    async def document_events(key: str):
        """Server-Sent Events stream: current snapshot, then every change."""
        queue: asyncio.Queue = asyncio.Queue(maxsize=SSE_QUEUE_SIZE)
        hub.listeners.setdefault(key, set()).add(queue)
        logger.info(f'SSE client subscribed to {key}')

        async def send_events():
            try:
                yield f'event: snapshot\ndata: {json.dumps(hub.snapshot(key))}\n\n'
                while True:
                    try:
                        snapshot = await asyncio.wait_for(queue.get(), timeout=SSE_KEEPALIVE_SECONDS)
                        yield f'event: snapshot\ndata: {json.dumps(snapshot)}\n\n'
                    except asyncio.TimeoutError:
                        yield ': keepalive\n\n'
            except asyncio.CancelledError:
                pass
            finally:
                hub.listeners.get(key, set()).discard(queue)
                logger.info(f'SSE client unsubscribed from {key}')

        response = await app.make_response(send_events())
        response.headers['Content-Type'] = 'text/event-stream'
        response.headers['Cache-Control'] = 'no-cache'
        response.headers['Connection'] = 'keep-alive'
        response.headers['X-Accel-Buffering'] = 'no'
        response.timeout = None
        return response

    return app


if __name__ == '__main__':
    _config = Config()
    LoggerManager(_config)
    create_app(_config).run(host='0.0.0.0', port=_config.server_port)
