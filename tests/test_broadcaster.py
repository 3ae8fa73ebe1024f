import asyncio
from datetime import datetime, timezone
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from mcpchat.errors import ChannelClosedError
from mcpchat.models import ChannelKind, PushEvent
from mcpchat.services.broadcaster import PushBroadcaster, time_payload
from mcpchat.services.channels import RpcChannel
from mcpchat.services.registry import TransportRegistry


class RecordingChannel:
    """Push channel stand-in that remembers what it was sent."""

    kind = ChannelKind.PUSH

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.sent: List[PushEvent] = []
        self.closed = False

    async def send(self, event: PushEvent) -> bool:
        self.sent.append(event)
        return True

    async def close(self) -> None:
        self.closed = True


def failing_channel(session_id: str) -> MagicMock:
    m = MagicMock()
    m.kind = ChannelKind.PUSH
    m.session_id = session_id
    m.closed = False
    m.send = AsyncMock(side_effect=ChannelClosedError("client went away"))
    m.close = AsyncMock(return_value=None)
    return m


@pytest.mark.asyncio
async def test_broadcast_survives_one_failing_channel(registry: TransportRegistry) -> None:
    """N-1 channels still get the event; the failing one is deregistered and closed."""
    good = [RecordingChannel(f"good-{i}") for i in range(3)]
    bad = failing_channel("bad")
    registry.register("good-0", good[0])
    registry.register("bad", bad)
    registry.register("good-1", good[1])
    registry.register("good-2", good[2])

    broadcaster = PushBroadcaster(registry)
    delivered = await broadcaster.broadcast("time-update", {"currentTime": "12:00:00"})

    assert delivered == 3
    for channel in good:
        assert [e.event for e in channel.sent] == ["time-update"]
    assert "bad" not in registry
    assert registry.count(ChannelKind.PUSH) == 3
    bad.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_broadcast_skips_request_response_sessions(registry: TransportRegistry) -> None:
    rpc = RpcChannel()
    push = RecordingChannel("p1")
    registry.register(rpc.session_id, rpc)
    registry.register("p1", push)

    delivered = await PushBroadcaster(registry).broadcast("heartbeat", {"timestamp": "x"})
    assert delivered == 1
    assert rpc.session_id in registry


@pytest.mark.asyncio
async def test_time_update_without_clients_sends_nothing(registry: TransportRegistry) -> None:
    assert await PushBroadcaster(registry).send_time_update() == 0


def test_time_payload_fields() -> None:
    now = datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    payload = time_payload(now)
    assert payload["message"] == "Server Time Update"
    assert payload["timestamp"] == now.isoformat()
    assert len(payload["currentTime"].split(":")) == 3
    assert payload["date"].count("-") == 2


@pytest.mark.asyncio
async def test_connect_client_registers_and_greets(registry: TransportRegistry) -> None:
    channel = await PushBroadcaster(registry).connect_client()
    assert registry.get(channel.session_id) is channel

    frame = await asyncio.wait_for(channel.events().__anext__(), timeout=1)
    assert frame.startswith("event: connected\n")
    assert channel.session_id in frame


@pytest.mark.asyncio
async def test_periodic_tasks_start_and_stop(registry: TransportRegistry) -> None:
    """Timers fire while running and are gone after stop()."""
    channel = RecordingChannel("p1")
    registry.register("p1", channel)
    broadcaster = PushBroadcaster(registry, time_interval=0.01, heartbeat_interval=0.02)

    broadcaster.start()
    assert broadcaster.running
    await asyncio.sleep(0.1)
    await broadcaster.stop()
    await broadcaster.stop()
    assert not broadcaster.running

    events = {e.event for e in channel.sent}
    assert {"time-update", "heartbeat"} <= events

    count = len(channel.sent)
    await asyncio.sleep(0.05)
    assert len(channel.sent) == count
