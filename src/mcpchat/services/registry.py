import logging
from typing import Dict, List

from ..errors import DuplicateSessionError
from ..models import Channel, ChannelKind, Session

logger = logging.getLogger(__name__)


class TransportRegistry:
    """In-memory map of session id -> open channel.

    Request/response sessions, websocket chats and push streams all live in
    the same map; `kind` on each channel tells them apart. Mutations are plain
    dict operations, which the single-threaded event loop keeps atomic.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def register(self, session_id: str, channel: Channel) -> Session:
        """Add a channel under session_id. Raises DuplicateSessionError if taken."""
        if session_id in self._sessions:
            raise DuplicateSessionError(session_id)
        session = Session(session_id=session_id, channel=channel)
        self._sessions[session_id] = session
        logger.info("Registered %s session %s", channel.kind.value, session_id)
        return session

    def get(self, session_id: str | None) -> Channel | None:
        """Return the channel for session_id, or None if not registered."""
        if not session_id:
            return None
        session = self._sessions.get(session_id)
        return session.channel if session else None

    def get_session(self, session_id: str | None) -> Session | None:
        if not session_id:
            return None
        return self._sessions.get(session_id)

    def remove(self, session_id: str | None) -> Channel | None:
        """Drop session_id from the map. Unknown ids are a no-op."""
        if not session_id:
            return None
        session = self._sessions.pop(session_id, None)
        if session is None:
            return None
        logger.info("Removed %s session %s", session.channel.kind.value, session_id)
        return session.channel

    async def close(self, session_id: str | None) -> bool:
        """Remove session_id and close its channel. Returns False if unknown."""
        channel = self.remove(session_id)
        if channel is None:
            return False
        await channel.close()
        return True

    def channels(self, kind: ChannelKind | None = None) -> List[Channel]:
        """Snapshot of registered channels, optionally filtered by kind."""
        return [
            s.channel
            for s in self._sessions.values()
            if kind is None or s.channel.kind == kind
        ]

    def count(self, kind: ChannelKind | None = None) -> int:
        if kind is None:
            return len(self._sessions)
        return len(self.channels(kind))

    async def aclose(self) -> None:
        """Close every channel and empty the registry. Idempotent."""
        for session_id in list(self._sessions):
            await self.close(session_id)

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
