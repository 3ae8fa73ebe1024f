"""MCP sessions over HTTP, served by the SDK transports.

Streamable HTTP: a `POST /mcp` carrying `initialize` and no session id opens
a session and answers with its id in the `mcp-session-id` header; every later
request must echo it. Legacy SSE: `GET /mcp` opens an event stream whose
first `endpoint` event names the `/messages?session_id=...` URL to post to.

Both kinds are `rpc` channels in the TransportRegistry and `DELETE /mcp`
closes either one.
"""

import json
import logging
import re
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.lowlevel import Server
from mcp.server.sse import SseServerTransport
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import Message, Receive, Scope, Send

from .models import ChannelKind, new_session_id
from .services.channels import RpcChannel
from .services.registry import TransportRegistry

logger = logging.getLogger(__name__)

SESSION_HEADER = MCP_SESSION_ID_HEADER
SESSION_ERROR = -32000
MESSAGES_PATH = "/messages"

_ENDPOINT_SESSION = re.compile(rb"session_id=([0-9a-f]{32})")


def rpc_error(code: int, message: str, request_id: Any = None) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "error": {"code": code, "message": message}, "id": request_id}


def _no_session() -> Response:
    return JSONResponse(
        rpc_error(SESSION_ERROR, "Bad Request: No valid session ID provided"), status_code=400
    )


def _is_error_reply(body: bytes) -> bool:
    """True when a JSON reply to the opening request is a JSON-RPC error."""
    try:
        reply = json.loads(body)
    except ValueError:
        return False
    return isinstance(reply, dict) and "error" in reply


class McpSessionHost:
    """Opens, routes and closes MCP sessions for one MCP server.

    Every session is served by its own task in the host's task group, so
    `run()` must be active (the app lifespan) while requests come in.
    """

    def __init__(self, registry: TransportRegistry, server: Server, json_response: bool = True) -> None:
        self._registry = registry
        self._server = server
        self._json_response = json_response
        self._sse = SseServerTransport(MESSAGES_PATH)
        self._task_group: TaskGroup | None = None

    @asynccontextmanager
    async def run(self) -> AsyncIterator[None]:
        async with anyio.create_task_group() as tg:
            self._task_group = tg
            try:
                yield
            finally:
                tg.cancel_scope.cancel()
                self._task_group = None

    def _channel(self, session_id: str | None) -> RpcChannel | None:
        channel = self._registry.get(session_id)
        if channel is None or channel.kind != ChannelKind.RPC:
            return None
        return channel  # type: ignore[return-value]

    async def handle_mcp(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI handler for `/mcp` (GET, POST and DELETE)."""
        request = Request(scope, receive)
        if request.method == "GET":
            await self._serve_event_stream(scope, receive, send)
            return
        if request.method == "DELETE":
            response = await self.terminate(request.headers.get(SESSION_HEADER))
            await response(scope, receive, send)
            return
        if request.method != "POST":
            await Response(status_code=405, headers={"Allow": "GET, POST, DELETE"})(scope, receive, send)
            return

        session_id = request.headers.get(SESSION_HEADER)
        if not session_id:
            await self._open_session(scope, receive, send)
            return
        channel = self._channel(session_id)
        if channel is None or channel.transport is None:
            await _no_session()(scope, receive, send)
            return
        await channel.handle_request(scope, receive, send)

    async def handle_message(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI handler for `POST /messages`, the legacy SSE client-to-server leg."""
        request = Request(scope, receive)
        params = request.query_params
        session_id = params.get("sessionId") or params.get("session_id")
        channel = self._channel(session_id)
        if channel is None or channel.transport is not None:
            response = JSONResponse({"error": "No transport found for sessionId"}, status_code=400)
            await response(scope, receive, send)
            return
        scope = dict(scope, query_string=f"session_id={channel.session_id}".encode())
        await self._sse.handle_post_message(scope, receive, send)

    async def terminate(self, session_id: str | None) -> Response:
        """Close an MCP session of either kind. Unknown ids are a client error."""
        if self._channel(session_id) is None:
            return JSONResponse({"error": "Invalid or missing session ID"}, status_code=400)
        await self._registry.close(session_id)
        logger.info("MCP session closed: %s", session_id)
        return JSONResponse({"status": "Session terminated"})

    async def _open_session(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Register a new session and let its transport answer the opening request.

        Only an `initialize` request succeeds here. When the transport refuses
        the request, or the server answers it with a JSON-RPC error, the
        session is closed again before this returns.
        """
        if self._task_group is None:
            raise RuntimeError("MCP session host is not running")

        transport = StreamableHTTPServerTransport(
            mcp_session_id=new_session_id(),
            is_json_response_enabled=self._json_response,
        )
        channel = RpcChannel(transport=transport)
        self._registry.register(channel.session_id, channel)

        status: int | None = None
        body = bytearray()

        async def send_with_status(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
            elif message["type"] == "http.response.body":
                body.extend(message.get("body", b""))
            await send(message)

        opened = False
        try:
            await self._task_group.start(self._serve_session, channel)
            await channel.handle_request(scope, receive, send_with_status)
            opened = status is not None and status < 400 and not _is_error_reply(body)
        finally:
            if opened:
                logger.info("New MCP session initialized: %s", channel.session_id)
            else:
                logger.info("MCP session %s not opened (status %s)", channel.session_id, status)
                await self._registry.close(channel.session_id)

    async def _serve_session(
        self, channel: RpcChannel, *, task_status: TaskStatus[None] = anyio.TASK_STATUS_IGNORED
    ) -> None:
        assert channel.transport is not None
        try:
            with channel.cancel_scope:
                async with channel.transport.connect() as (read_stream, write_stream):
                    task_status.started()
                    try:
                        await self._server.run(
                            read_stream,
                            write_stream,
                            self._server.create_initialization_options(),
                        )
                    except Exception:
                        logger.exception("MCP session %s crashed", channel.session_id)
        finally:
            await self._registry.close(channel.session_id)

    async def _serve_event_stream(self, scope: Scope, receive: Receive, send: Send) -> None:
        """Run a legacy SSE session for as long as its event stream stays open.

        The SDK transport picks the session id and announces it in the
        `endpoint` event; the channel is registered when that event goes out.
        """
        channel: RpcChannel | None = None
        cancel_scope = anyio.CancelScope()
        body_open = False

        async def send_and_register(message: Message) -> None:
            nonlocal channel, body_open
            if message["type"] == "http.response.start":
                body_open = True
            elif message["type"] == "http.response.body":
                body_open = message.get("more_body", False)
                match = _ENDPOINT_SESSION.search(message.get("body", b""))
                if channel is None and match:
                    channel = RpcChannel(match.group(1).decode(), cancel_scope=cancel_scope)
                    self._registry.register(channel.session_id, channel)
                    logger.info("New SSE MCP session: %s", channel.session_id)
            await send(message)

        try:
            with cancel_scope:
                async with self._sse.connect_sse(scope, receive, send_and_register) as (
                    read_stream,
                    write_stream,
                ):
                    await self._server.run(
                        read_stream,
                        write_stream,
                        self._server.create_initialization_options(),
                    )
            if cancel_scope.cancel_called and body_open:
                # Terminated from DELETE /mcp: finish the response cleanly.
                await send({"type": "http.response.body", "body": b"", "more_body": False})
        finally:
            if channel is not None:
                await self._registry.close(channel.session_id)
                logger.info("SSE MCP session ended: %s", channel.session_id)
