import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List

from ..errors import ChannelClosedError
from ..models import ChannelKind, PushEvent, utcnow
from .channels import PushChannel
from .registry import TransportRegistry

logger = logging.getLogger(__name__)


def time_payload(now: datetime | None = None) -> Dict[str, Any]:
    """Build the payload for a `time-update` event."""
    now = now or utcnow()
    local = now.astimezone()
    return {
        "message": "Server Time Update",
        "currentTime": local.strftime("%H:%M:%S"),
        "date": local.strftime("%Y-%m-%d"),
        "timestamp": now.isoformat(),
    }


class PushBroadcaster:
    """Sends events to every registered push channel.

    Owns two periodic tasks (time updates and heartbeats) whose lifetime is
    bound to start()/stop().
    """

    def __init__(
        self,
        registry: TransportRegistry,
        time_interval: float = 6.0,
        heartbeat_interval: float = 30.0,
        queue_size: int = 100,
    ) -> None:
        self._registry = registry
        self._time_interval = time_interval
        self._heartbeat_interval = heartbeat_interval
        self._queue_size = queue_size
        self._tasks: List[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def connect_client(self) -> PushChannel:
        """Create, register and greet a new push channel."""
        channel = PushChannel(max_queue=self._queue_size)
        self._registry.register(channel.session_id, channel)
        await channel.send(
            PushEvent(
                "connected",
                {
                    "sessionId": channel.session_id,
                    "message": "Connected to real-time updates",
                },
            )
        )
        return channel

    async def broadcast(self, event: str, data: Dict[str, Any]) -> int:
        """Send one event to all push channels; returns the number delivered.

        A channel whose write fails is skipped, then removed from the
        registry and closed once the loop is done.
        """
        message = PushEvent(event, data)
        delivered = 0
        failed: List[str] = []
        for channel in self._registry.channels(ChannelKind.PUSH):
            try:
                if await channel.send(message):
                    delivered += 1
            except (ChannelClosedError, OSError, RuntimeError) as e:
                logger.warning(
                    "Error broadcasting %s to push client %s: %s",
                    event,
                    channel.session_id,
                    e,
                )
                failed.append(channel.session_id)

        for session_id in failed:
            await self._registry.close(session_id)
        return delivered

    async def send_time_update(self) -> int:
        clients = self._registry.count(ChannelKind.PUSH)
        if clients == 0:
            logger.debug("No push clients connected for time update")
            return 0
        logger.info("Sending time update to %d clients", clients)
        return await self.broadcast("time-update", time_payload())

    async def send_heartbeat(self) -> int:
        return await self.broadcast("heartbeat", {"timestamp": utcnow().isoformat()})

    async def _every(
        self, interval: float, action: Callable[[], Awaitable[int]], name: str
    ) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except Exception as e:
                logger.exception("Periodic %s failed: %s", name, e)

    def start(self) -> None:
        """Start the periodic tasks. Idempotent."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(
                self._every(self._time_interval, self.send_time_update, "time-update"),
                name="push-time-update",
            ),
            asyncio.create_task(
                self._every(self._heartbeat_interval, self.send_heartbeat, "heartbeat"),
                name="push-heartbeat",
            ),
        ]
        logger.info(
            "Push broadcaster started (time every %ss, heartbeat every %ss)",
            self._time_interval,
            self._heartbeat_interval,
        )

    async def stop(self) -> None:
        """Cancel the periodic tasks and wait for them. Idempotent."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if tasks:
            logger.info("Push broadcaster stopped")
