import asyncio
import logging
from typing import Any, Dict, Iterator, List, Tuple

import httpx

from ..models import ChatMessage, MessageType, Sender
from .api import ChatApiClient

logger = logging.getLogger(__name__)

WELCOME = (
    "Welcome! I'm your MCP-powered chatbot. Try asking me to use tools like "
    "calculator, weather, or text processing!"
)


class Transcript:
    """Append-only list of chat messages, emptied only by clear()."""

    def __init__(self) -> None:
        self._messages: List[ChatMessage] = []

    def append(
        self,
        content: str,
        sender: Sender = Sender.ASSISTANT,
        type: MessageType = MessageType.TEXT,
    ) -> ChatMessage:
        message = ChatMessage(content=content, sender=sender, type=type)
        self._messages.append(message)
        return message

    @property
    def messages(self) -> Tuple[ChatMessage, ...]:
        return tuple(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[ChatMessage]:
        return iter(tuple(self._messages))


def format_push_event(event: str, data: Dict[str, Any]) -> str | None:
    """Transcript text for a push event, or None for events that are not shown."""
    if event == "time-update":
        return (
            f"{data.get('message', 'Server Time Update')}: "
            f"{data.get('currentTime', '?')} ({data.get('date', '?')})"
        )
    if event == "crypto-update":
        prices = ", ".join(
            f"{p['symbol']} {p['price']:.2f}" for p in data.get("prices", [])
        )
        return f"Crypto prices updated ({data.get('currency', 'USD')}): {prices}"
    if event == "news-update":
        articles = data.get("articles", [])
        category = data.get("category", "news")
        return f"News updated: {len(articles)} {category} headlines"
    return None


class ChatFacade:
    """Client-side chat session: transcript, connection state and push feed.

    At most one message is in flight at a time; push events are appended in
    the order they arrive, interleaved with chat replies.
    """

    def __init__(self, api: ChatApiClient, listen: bool = True) -> None:
        self.api = api
        self.transcript = Transcript()
        self.tools: List[Dict[str, Any]] = []
        self.resources: List[Dict[str, Any]] = []
        self.prompts: List[Dict[str, Any]] = []
        self._listen = listen
        self._connected = False
        self._listener: asyncio.Task[None] | None = None
        self._inflight: asyncio.Task[Dict[str, Any]] | None = None
        self.transcript.append(WELCOME)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def sending(self) -> bool:
        return self._inflight is not None

    async def connect(self) -> None:
        """Health-check the server, load capabilities, start the push listener."""
        if self._connected:
            return
        try:
            await self.api.health()
        except httpx.HTTPError as e:
            logger.error("Failed to connect to server: %s", e)
            self.transcript.append(
                f"Failed to connect to server: {e}. Please ensure the server is running.",
                type=MessageType.ERROR,
            )
            raise

        await self._load_capabilities()
        self._connected = True
        if self._listen:
            self._listener = asyncio.create_task(self._listen_push())
        self.transcript.append(
            "Connected to server! You can now use available tools and resources."
        )

    async def _load_capabilities(self) -> None:
        try:
            self.tools = await self.api.list_tools()
            self.resources = await self.api.list_resources()
            self.prompts = await self.api.list_prompts()
        except httpx.HTTPError as e:
            logger.error("Failed to load capabilities: %s", e)

    async def disconnect(self) -> None:
        """Stop the push listener and fail any in-flight send."""
        if not self._connected:
            return
        self._connected = False
        listener, self._listener = self._listener, None
        if self._inflight is not None:
            self._inflight.cancel()
        if listener is not None:
            listener.cancel()
            try:
                await listener
            except asyncio.CancelledError:
                pass
        self.transcript.append("Disconnected from server.")

    async def aclose(self) -> None:
        await self.disconnect()
        await self.api.aclose()

    async def send_message(self, text: str) -> ChatMessage | None:
        """Send text to the server and append the reply.

        Returns the appended assistant (or error) message, or None for blank
        input. Sending while disconnected or while another send is pending only
        appends an error message.
        """
        text = text.strip()
        if not text:
            return None
        if not self._connected:
            return self.transcript.append(
                "Not connected to server. Please connect first.", type=MessageType.ERROR
            )
        if self._inflight is not None:
            return self.transcript.append(
                "Please wait for the previous message to finish.", type=MessageType.ERROR
            )

        self.transcript.append(text, Sender.USER)
        task = asyncio.create_task(self.api.chat(text))
        self._inflight = task
        try:
            reply = await task
        except asyncio.CancelledError:
            if task.cancelled() and not self._connected:
                return self.transcript.append(
                    "Disconnected from server before a reply arrived.", type=MessageType.ERROR
                )
            raise
        except httpx.HTTPError as e:
            logger.error("Error processing message: %s", e)
            return self.transcript.append(
                "Sorry, I encountered an error while processing your message.",
                type=MessageType.ERROR,
            )
        finally:
            self._inflight = None

        content = reply.get("content") or []
        reply_text = content[0].get("text", "") if content else ""
        if reply.get("isError"):
            kind = MessageType.ERROR
        elif reply.get("intent") in ("help", "fallback"):
            kind = MessageType.TEXT
        else:
            kind = MessageType.TOOL_RESULT
        return self.transcript.append(reply_text, type=kind)

    def clear(self) -> None:
        self.transcript.clear()

    def handle_push_event(self, event: str, data: Dict[str, Any]) -> ChatMessage | None:
        try:
            text = format_push_event(event, data)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed %s push event skipped: %r", event, e)
            return None
        if text is None:
            logger.debug("Push event %s not shown", event)
            return None
        return self.transcript.append(text)

    async def _listen_push(self) -> None:
        try:
            async for event, data in self.api.stream_events():
                self.handle_push_event(event, data)
        except httpx.HTTPError as e:
            logger.warning("Push stream ended: %s", e)
            if self._connected:
                self.transcript.append(
                    f"Real-time updates unavailable: {e}", type=MessageType.ERROR
                )
        except Exception as e:
            logger.exception("Push listener failed: %s", e)
            if self._connected:
                self.transcript.append(
                    f"Real-time updates stopped: {e}", type=MessageType.ERROR
                )
