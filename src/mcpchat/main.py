import json
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Any, AsyncIterator, Awaitable, Callable, Dict

import uvicorn
from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response, StreamingResponse
from mcp.server.streamable_http import MCP_PROTOCOL_VERSION_HEADER
from pydantic import BaseModel, Field
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .chat import IntentDispatcher
from .errors import (
    ChannelClosedError,
    InvalidToolArgumentsError,
    PromptNotFoundError,
    ResourceNotFoundError,
    UnknownToolError,
)
from .mcp_server import build_mcp_server
from .models import ChannelKind, utcnow
from .protocol import MESSAGES_PATH, SESSION_HEADER, McpSessionHost
from .services.broadcaster import PushBroadcaster
from .services.channels import WebSocketChannel
from .services.registry import TransportRegistry
from .settings import Settings, get_settings
from .tools import DataCache, ToolCatalog, ToolContext


def setup_server_logging(settings: Settings) -> logging.Logger:
    """Configure the `mcpchat` logger tree and return the server logger."""
    logs_dir = settings.log_dir
    logs_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger("mcpchat")
    root.setLevel(settings.log_level)
    if not root.handlers:
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s - %(message)s")

        ch = logging.StreamHandler()
        ch.setFormatter(fmt)
        root.addHandler(ch)

        fh = RotatingFileHandler(logs_dir / "server.log", maxBytes=5_000_000, backupCount=3)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    return logging.getLogger("mcpchat.server")


def _cors_origins_list(origins: str) -> list[str]:
    """Parse CORS_ORIGINS into a list."""
    if not origins or origins.strip() == "*":
        return ["*"]
    return [o.strip() for o in origins.split(",") if o.strip()]


LOGGER = logging.getLogger("mcpchat.server")


@dataclass
class AppServices:
    """Everything a request handler needs, created per app lifespan."""

    registry: TransportRegistry
    broadcaster: PushBroadcaster
    catalog: ToolCatalog
    dispatcher: IntentDispatcher
    mcp: McpSessionHost


def build_services(settings: Settings) -> AppServices:
    registry = TransportRegistry()
    broadcaster = PushBroadcaster(
        registry,
        time_interval=settings.time_update_interval_seconds,
        heartbeat_interval=settings.heartbeat_interval_seconds,
        queue_size=settings.push_queue_size,
    )
    context = ToolContext(
        cache=DataCache(
            {
                "crypto": settings.crypto_cache_ttl_seconds,
                "news": settings.news_cache_ttl_seconds,
            }
        ),
        publish=broadcaster.broadcast,
        server_name=settings.server_name,
        server_version=settings.server_version,
        push_clients=lambda: registry.count(ChannelKind.PUSH),
    )
    catalog = ToolCatalog(context, timeout_seconds=settings.tool_timeout_seconds)
    return AppServices(
        registry=registry,
        broadcaster=broadcaster,
        catalog=catalog,
        dispatcher=IntentDispatcher(catalog, default_city=settings.default_city),
        mcp=McpSessionHost(
            registry,
            build_mcp_server(catalog, settings.server_name, settings.server_version),
            json_response=settings.mcp_json_response,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the registry and services, run the push timers, tear down on exit."""
    services = build_services(app.state.settings)
    app.state.services = services
    async with services.mcp.run():
        services.broadcaster.start()
        LOGGER.info("Server ready: %d tools registered", len(services.catalog.tools))

        yield

        LOGGER.info("Shutting down...")
        await services.broadcaster.stop()
        await services.registry.aclose()


def get_services(request: Request) -> AppServices:
    return request.app.state.services


class McpEndpoint:
    """ASGI endpoint handing the raw request to the app's MCP session host."""

    def __init__(self, handle: Callable[[McpSessionHost, Scope, Receive, Send], Awaitable[None]]) -> None:
        self._handle = handle

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        services: AppServices = scope["app"].state.services
        await self._handle(services.mcp, scope, receive, send)


class ToolCallRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ResourceReadRequest(BaseModel):
    uri: str


class PromptGetRequest(BaseModel):
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class ChatRequest(BaseModel):
    message: str = ""


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_server_logging(settings)

    app = FastAPI(
        title="mcpchat demo server",
        version=settings.server_version,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins_list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Content-Type", "Accept", SESSION_HEADER, MCP_PROTOCOL_VERSION_HEADER],
        expose_headers=[SESSION_HEADER],
    )

    @app.exception_handler(UnknownToolError)
    @app.exception_handler(InvalidToolArgumentsError)
    async def bad_tool_call(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.warning("Rejected tool call: %s", exc)
        return JSONResponse({"error": str(exc)}, status_code=400)

    @app.exception_handler(ResourceNotFoundError)
    @app.exception_handler(PromptNotFoundError)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return JSONResponse({"error": str(exc)}, status_code=404)

    @app.exception_handler(Exception)
    async def internal_error(request: Request, exc: Exception) -> JSONResponse:
        LOGGER.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"error": "Internal server error"}, status_code=500)

    @app.get("/health")
    async def health(services: AppServices = Depends(get_services)) -> dict[str, Any]:
        """Health check for load balancers and monitoring."""
        return {
            "status": "healthy",
            "timestamp": utcnow().isoformat(),
            "activeSessions": services.registry.count(ChannelKind.RPC),
            "pushClients": services.registry.count(ChannelKind.PUSH),
        }

    @app.get("/sse")
    async def sse(services: AppServices = Depends(get_services)) -> StreamingResponse:
        """Push stream: connected, heartbeat, time-update and *-update events."""
        channel = await services.broadcaster.connect_client()
        LOGGER.info("SSE client %s connected", channel.session_id)

        async def stream() -> AsyncIterator[str]:
            try:
                async for frame in channel.events():
                    yield frame
            finally:
                await services.registry.close(channel.session_id)
                LOGGER.info("SSE client %s disconnected", channel.session_id)

        return StreamingResponse(
            stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @app.delete("/sse/{session_id}")
    async def sse_terminate(
        session_id: str, services: AppServices = Depends(get_services)
    ) -> dict[str, Any]:
        """Close a push stream. Unknown ids are a silent no-op."""
        channel = services.registry.get(session_id)
        terminated = False
        if channel is not None and channel.kind == ChannelKind.PUSH:
            terminated = await services.registry.close(session_id)
        return {"status": "ok", "terminated": terminated}

    app.router.routes.append(
        Route("/mcp", endpoint=McpEndpoint(McpSessionHost.handle_mcp), methods=["GET", "POST", "DELETE"])
    )
    app.router.routes.append(
        Route(MESSAGES_PATH, endpoint=McpEndpoint(McpSessionHost.handle_message), methods=["POST"])
    )

    @app.get("/api/tools")
    async def list_tools(services: AppServices = Depends(get_services)) -> dict[str, Any]:
        return {"tools": services.catalog.list_tools()}

    @app.get("/api/resources")
    async def list_resources(services: AppServices = Depends(get_services)) -> dict[str, Any]:
        return {"resources": services.catalog.list_resources()}

    @app.get("/api/prompts")
    async def list_prompts(services: AppServices = Depends(get_services)) -> dict[str, Any]:
        return {"prompts": services.catalog.list_prompts()}

    @app.post("/api/tools/call")
    async def call_tool(
        body: ToolCallRequest, services: AppServices = Depends(get_services)
    ) -> dict[str, Any]:
        result = await services.catalog.call_tool(body.name, body.arguments)
        return result.to_dict()

    @app.post("/api/resources/read")
    async def read_resource(
        body: ResourceReadRequest, services: AppServices = Depends(get_services)
    ) -> dict[str, Any]:
        return {"contents": [await services.catalog.read_resource(body.uri)]}

    @app.post("/api/prompts/get")
    async def get_prompt(
        body: PromptGetRequest, services: AppServices = Depends(get_services)
    ) -> dict[str, Any]:
        return services.catalog.get_prompt(body.name, body.arguments)

    @app.post("/api/chat")
    async def chat(body: ChatRequest, services: AppServices = Depends(get_services)) -> Response:
        message = body.message.strip()
        if not message:
            return JSONResponse({"error": "Empty message"}, status_code=400)
        reply = await services.dispatcher.dispatch(message)
        return JSONResponse(
            {
                "intent": reply.intent.value,
                "content": [{"type": "text", "text": reply.text}],
                "isError": reply.is_error,
            }
        )

    @app.websocket("/ws/chat")
    async def chat_ws(websocket: WebSocket) -> None:
        """WebSocket chat: client sends { message }, server answers each with a result.

        Response Format:
            - {"type": "connected", "session_id": str} - once, after accept
            - {"type": "result", "intent": str, "data": str, "isError": bool}
            - {"type": "error", "data": str} - bad payload
        """
        services: AppServices = websocket.app.state.services
        await websocket.accept()
        channel = WebSocketChannel(websocket)
        services.registry.register(channel.session_id, channel)
        LOGGER.info("WS chat start session_id=%s", channel.session_id)

        try:
            await channel.send_json({"type": "connected", "session_id": channel.session_id})
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError as e:
                    LOGGER.error("Invalid WS payload (not JSON): %s", e)
                    await channel.send_json({"type": "error", "data": "Invalid JSON payload"})
                    continue

                message = ""
                if isinstance(payload, dict):
                    message = str(payload.get("message") or "").strip()
                if not message:
                    await channel.send_json({"type": "error", "data": "Empty message"})
                    continue

                reply = await services.dispatcher.dispatch(message)
                await channel.send_json(
                    {
                        "type": "result",
                        "intent": reply.intent.value,
                        "data": reply.text,
                        "isError": reply.is_error,
                    }
                )
        except WebSocketDisconnect:
            LOGGER.info("WS disconnect session_id=%s", channel.session_id)
        except ChannelClosedError as e:
            LOGGER.info("WS channel closed session_id=%s: %s", channel.session_id, e)
        finally:
            await services.registry.close(channel.session_id)

    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "mcpchat.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
