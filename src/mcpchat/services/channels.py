import asyncio
import logging
from typing import Any, AsyncIterator, Dict

import anyio
from fastapi import WebSocket, WebSocketDisconnect
from mcp.server.streamable_http import StreamableHTTPServerTransport
from starlette.types import Receive, Scope, Send

from ..errors import ChannelClosedError
from ..models import ChannelKind, PushEvent, new_session_id

logger = logging.getLogger(__name__)


class PushChannel:
    """One-way Server-Sent Events channel backed by a bounded queue.

    The HTTP response drains `events()`; broadcasters call `send()`. When a
    reader is too slow and the queue fills up, new events are dropped.
    """

    kind = ChannelKind.PUSH

    def __init__(self, session_id: str | None = None, max_queue: int = 100) -> None:
        self.session_id = session_id or new_session_id()
        self._queue: asyncio.Queue[PushEvent | None] = asyncio.Queue(maxsize=max_queue)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, event: PushEvent) -> bool:
        """Queue an event. Returns False if it was dropped because the queue is full."""
        if self._closed:
            raise ChannelClosedError(f"Push channel {self.session_id} is closed")
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug("Push queue full for %s; dropping %s", self.session_id, event.event)
            return False
        return True

    async def events(self) -> AsyncIterator[str]:
        """Yield encoded SSE frames until the channel is closed."""
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event.encode()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)


class RpcChannel:
    """An MCP session registered under its session id.

    Streamable HTTP sessions carry their SDK `transport`; legacy SSE sessions
    have none and live only as long as their event stream. The task serving
    the session runs inside `cancel_scope`, so closing the channel stops it and
    fails whatever requests it still had in flight.
    """

    kind = ChannelKind.RPC

    def __init__(
        self,
        session_id: str | None = None,
        transport: StreamableHTTPServerTransport | None = None,
        cancel_scope: anyio.CancelScope | None = None,
    ) -> None:
        if session_id is None and transport is not None:
            session_id = transport.mcp_session_id
        self.session_id = session_id or new_session_id()
        self.transport = transport
        self._cancel_scope = cancel_scope
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def cancel_scope(self) -> anyio.CancelScope:
        if self._cancel_scope is None:
            self._cancel_scope = anyio.CancelScope()
        return self._cancel_scope

    async def handle_request(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Hand an HTTP request for this session to its transport."""
        if self._closed or self.transport is None:
            raise ChannelClosedError(f"Session {self.session_id} is closed")
        await self.transport.handle_request(scope, receive, send)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()
        if self.transport is not None and not self.transport.is_terminated:
            with anyio.CancelScope(shield=True):
                await self.transport.terminate()


class WebSocketChannel:
    """A websocket chat connection registered for the life of the socket."""

    kind = ChannelKind.WEBSOCKET

    def __init__(self, websocket: WebSocket, session_id: str | None = None) -> None:
        self.session_id = session_id or new_session_id()
        self._websocket = websocket
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send_json(self, data: Dict[str, Any]) -> None:
        if self._closed:
            raise ChannelClosedError(f"Websocket {self.session_id} is closed")
        try:
            await self._websocket.send_json(data)
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            raise ChannelClosedError(str(e)) from e

    async def send(self, event: PushEvent) -> bool:
        await self.send_json({"type": event.event, "data": event.data})
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._websocket.close()
        except (OSError, RuntimeError):
            pass
