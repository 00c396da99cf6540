"""HTTP document store backed by the admin-state document server.

Writes go out as plain requests; subscriptions hold a Server-Sent Events
stream open and reconnect when it drops or goes stale.
"""

import asyncio
import json
import logging
from typing import Callable, Optional
from urllib.parse import quote

import httpx

from .errors import SyncError

logger = logging.getLogger(__name__)

# Retry settings
SSE_RECONNECT_DELAY = 5.0
SSE_READ_TIMEOUT = 60.0  # Reconnect if no data received for this long
WRITE_TIMEOUT = 5.0


def _path(key: str) -> str:
    return quote(key, safe='/')


class DocumentSubscription:
    """Watch one document's SSE stream and hand every snapshot to a callback.

    Usage:
        subscription = DocumentSubscription(url, on_change=my_callback)
        await subscription.run()  # Runs until stopped or cancelled
    """

    def __init__(
        self,
        url: str,
        on_change: Callable[[dict], None],
        transport: Optional[httpx.AsyncBaseTransport] = None,
        reconnect_delay: float = SSE_RECONNECT_DELAY,
    ):
        self._url = url
        self._on_change = on_change
        self._transport = transport
        self._reconnect_delay = reconnect_delay
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Connect to SSE and process events until stopped."""
        logger.info(f'Subscribing to {self._url}')
        self._running = True

        while self._running:
            try:
                await self._consume_sse()
            except asyncio.CancelledError:
                logger.info(f'Subscription to {self._url} cancelled')
                break
            except httpx.ReadTimeout:
                logger.warning(f'SSE read timeout after {SSE_READ_TIMEOUT}s, reconnecting...')
                await asyncio.sleep(1.0)
            except httpx.HTTPStatusError as e:
                logger.error(f'HTTP error from document server: {e}')
                await asyncio.sleep(self._reconnect_delay)
            except Exception as e:
                logger.error(f'Error in SSE connection: {e}')
                await asyncio.sleep(self._reconnect_delay)
            else:
                if self._running:
                    # Server closed the stream
                    await asyncio.sleep(self._reconnect_delay)

        self._running = False

    def stop(self) -> None:
        """Signal the subscription to stop."""
        self._running = False

    async def _consume_sse(self) -> None:
        # No connect timeout, but enforce read timeout for stale detection
        timeout = httpx.Timeout(connect=30.0, read=SSE_READ_TIMEOUT, write=None, pool=None)
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            async with client.stream('GET', self._url) as response:
                response.raise_for_status()
                logger.info('SSE connection established')

                async for line in response.aiter_lines():
                    if not self._running:
                        break
                    self.handle_line(line)

    def handle_line(self, line: str) -> None:
        """Parse an SSE line and dispatch document snapshots.

        - Lines starting with ':' are comments (keepalives)
        - 'event:', 'id:' and 'retry:' directives are ignored
        - 'data: <json object>' is a full document snapshot
        """
        line = line.strip()

        if not line or line.startswith(':'):
            return

        if line.startswith(('event:', 'retry:', 'id:')):
            return

        if not line.startswith('data:'):
            return

        data_str = line[5:].lstrip()
        if not data_str:
            return

        try:
            data = json.loads(data_str)
        except json.JSONDecodeError as e:
            logger.debug(f'Failed to parse SSE data as JSON: {e}')
            return

        if not isinstance(data, dict):
            logger.debug(f'Ignoring non-object SSE payload: {data!r}')
            return

        try:
            self._on_change(data)
        except Exception as e:
            logger.error(f'Error in document change callback: {e}', exc_info=True)


class HttpDocumentStore:
    """:class:`~switchover.realtime.DocumentStore` over HTTP.

    Routes (see :mod:`switchover.state_server`):
      - PATCH /documents/<key>             merge fields
      - GET   /events/<key>                SSE stream of snapshots
      - PUT   /collections/<name>/<id>     write a log entry
    """

    def __init__(
        self,
        base_url: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = WRITE_TIMEOUT,
        reconnect_delay: float = SSE_RECONNECT_DELAY,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._transport = transport
        self._reconnect_delay = reconnect_delay

    async def update(self, key: str, fields: dict) -> None:
        await self._request('PATCH', f'/documents/{_path(key)}', fields)

    async def append(self, collection: str, entry_id: str, entry: dict) -> None:
        await self._request('PUT', f'/collections/{quote(collection, safe="")}/{quote(entry_id, safe="")}', entry)

    def subscribe(self, key: str, callback: Callable[[dict], None]) -> Callable[[], None]:
        """Start a background SSE subscription. Must be called inside a running loop."""
        subscription = DocumentSubscription(
            f'{self.base_url}/events/{_path(key)}',
            on_change=callback,
            transport=self._transport,
            reconnect_delay=self._reconnect_delay,
        )
        task = asyncio.get_running_loop().create_task(subscription.run())

        def unsubscribe() -> None:
            subscription.stop()
            task.cancel()

        return unsubscribe

    async def _request(self, method: str, path: str, payload: dict) -> None:
        url = f'{self.base_url}{path}'
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                resp = await client.request(method, url, json=payload)
                resp.raise_for_status()
        except (httpx.RequestError, httpx.HTTPStatusError) as e:
            raise SyncError(f'{method} {url} failed: {e}') from e
