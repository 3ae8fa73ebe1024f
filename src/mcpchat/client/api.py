"""Async HTTP client for the mcpchat server REST API and push stream."""

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

import httpx

logger = logging.getLogger(__name__)


def parse_sse_frame(frame: str) -> Optional[Tuple[str, Dict[str, Any]]]:
    """Parse one Server-Sent Events frame into (event, data).

    Frames look like:
        event: time-update
        data: {"currentTime": "12:00:00", ...}
    """
    event = "message"
    data_lines: List[str] = []
    for line in frame.splitlines():
        if line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data_lines.append(line[5:].strip())

    if not data_lines:
        return None
    try:
        data = json.loads("\n".join(data_lines))
    except json.JSONDecodeError as e:
        logger.warning("Failed to parse SSE data for %s: %s", event, e)
        return None
    return event, data


class ChatApiClient:
    """Thin wrapper over the server's /health, /api/* and /sse endpoints."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = httpx.Timeout(timeout, connect=5.0)
        self._client = httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(self, path: str) -> Dict[str, Any]:
        response = await self._client.get(path)
        response.raise_for_status()
        return response.json()

    async def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._client.post(path, json=payload)
        response.raise_for_status()
        return response.json()

    async def health(self) -> Dict[str, Any]:
        return await self._get("/health")

    async def list_tools(self) -> List[Dict[str, Any]]:
        return (await self._get("/api/tools"))["tools"]

    async def list_resources(self) -> List[Dict[str, Any]]:
        return (await self._get("/api/resources"))["resources"]

    async def list_prompts(self) -> List[Dict[str, Any]]:
        return (await self._get("/api/prompts"))["prompts"]

    async def chat(self, message: str) -> Dict[str, Any]:
        """Send free text to the intent dispatcher; returns {intent, content, isError}."""
        return await self._post("/api/chat", {"message": message})

    async def call_tool(self, name: str, arguments: Dict[str, Any]) -> Dict[str, Any]:
        return await self._post("/api/tools/call", {"name": name, "arguments": arguments})

    async def read_resource(self, uri: str) -> Dict[str, Any]:
        return await self._post("/api/resources/read", {"uri": uri})

    async def stream_events(self) -> AsyncIterator[Tuple[str, Dict[str, Any]]]:
        """Yield (event, data) pairs from /sse until the server closes the stream."""
        async with self._client.stream(
            "GET", "/sse", timeout=httpx.Timeout(None, connect=5.0)
        ) as response:
            response.raise_for_status()
            buffer = ""
            async for chunk in response.aiter_text():
                buffer += chunk.replace("\r\n", "\n")
                while "\n\n" in buffer:
                    frame, buffer = buffer.split("\n\n", 1)
                    parsed = parse_sse_frame(frame)
                    if parsed:
                        yield parsed
