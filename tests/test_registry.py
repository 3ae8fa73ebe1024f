import pytest

from mcpchat.errors import DuplicateSessionError
from mcpchat.models import ChannelKind
from mcpchat.services.channels import PushChannel, RpcChannel
from mcpchat.services.registry import TransportRegistry


@pytest.mark.asyncio
async def test_register_then_get_returns_same_handle(registry: TransportRegistry) -> None:
    """get returns the exact channel object that was registered."""
    channel = RpcChannel()
    session = registry.register(channel.session_id, channel)
    assert registry.get(channel.session_id) is channel
    assert session.channel is channel
    assert session.created_at is not None
    assert channel.session_id in registry


@pytest.mark.asyncio
async def test_remove_then_get_is_not_found(registry: TransportRegistry) -> None:
    """After remove, the id is no longer resolvable."""
    channel = RpcChannel()
    registry.register(channel.session_id, channel)
    assert registry.remove(channel.session_id) is channel
    assert registry.get(channel.session_id) is None
    assert len(registry) == 0


def test_remove_unknown_id_is_noop(registry: TransportRegistry) -> None:
    """Removing an id that was never registered does not raise."""
    assert registry.remove("does-not-exist") is None
    assert registry.remove(None) is None
    assert registry.get(None) is None


@pytest.mark.asyncio
async def test_duplicate_register_rejected(registry: TransportRegistry) -> None:
    """At most one entry per session id."""
    first = RpcChannel(session_id="abc")
    registry.register("abc", first)
    with pytest.raises(DuplicateSessionError):
        registry.register("abc", RpcChannel(session_id="abc"))
    assert registry.get("abc") is first


@pytest.mark.asyncio
async def test_kinds_coexist(registry: TransportRegistry) -> None:
    """RPC and push channels share the map but are counted separately."""
    rpc = RpcChannel()
    push = PushChannel()
    registry.register(rpc.session_id, rpc)
    registry.register(push.session_id, push)

    assert registry.count() == 2
    assert registry.count(ChannelKind.RPC) == 1
    assert registry.channels(ChannelKind.PUSH) == [push]
    assert registry.channels(ChannelKind.RPC) == [rpc]


@pytest.mark.asyncio
async def test_close_removes_and_closes(registry: TransportRegistry) -> None:
    """close drops the entry and closes its channel; unknown ids return False."""
    push = PushChannel()
    registry.register(push.session_id, push)
    assert await registry.close(push.session_id) is True
    assert push.closed
    assert push.session_id not in registry
    assert await registry.close(push.session_id) is False


@pytest.mark.asyncio
async def test_aclose_closes_everything(registry: TransportRegistry) -> None:
    channels = [RpcChannel(), PushChannel(), RpcChannel()]
    for c in channels:
        registry.register(c.session_id, c)
    await registry.aclose()
    assert len(registry) == 0
    assert all(c.closed for c in channels)
