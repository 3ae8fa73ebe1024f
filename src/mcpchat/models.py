import json
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Protocol


class ChannelKind(str, Enum):
    """Kinds of channels that can live in the transport registry."""

    RPC = "rpc"
    PUSH = "push"
    WEBSOCKET = "websocket"


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class MessageType(str, Enum):
    TEXT = "text"
    TOOL_RESULT = "tool-result"
    ERROR = "error"


class Channel(Protocol):
    """Anything the registry can hold: a session id, a kind and a close()."""

    session_id: str
    kind: ChannelKind

    @property
    def closed(self) -> bool: ...

    async def close(self) -> None: ...


def new_session_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Session:
    """Registry entry: a channel handle keyed by its session id."""

    session_id: str
    channel: Channel
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry. Immutable once created."""

    content: str
    sender: Sender
    type: MessageType = MessageType.TEXT
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=utcnow)


@dataclass
class TextContent:
    text: str
    type: str = "text"


@dataclass
class ToolResult:
    """Outcome of a single tool call: text payload plus optional error flag."""

    text: str
    is_error: bool = False
    structured: Dict[str, Any] | None = None

    @property
    def content(self) -> List[TextContent]:
        return [TextContent(text=self.text)]

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the `{content: [...], isError?}` wire shape."""
        data: Dict[str, Any] = {
            "content": [{"type": c.type, "text": c.text} for c in self.content]
        }
        if self.is_error:
            data["isError"] = True
        if self.structured is not None:
            data["structuredContent"] = self.structured
        return data


@dataclass(frozen=True)
class PushEvent:
    """A named event with a JSON payload, as sent over the push channel."""

    event: str
    data: Dict[str, Any]

    def encode(self) -> str:
        """Render as a Server-Sent Events frame."""
        return f"event: {self.event}\ndata: {json.dumps(self.data)}\n\n"
