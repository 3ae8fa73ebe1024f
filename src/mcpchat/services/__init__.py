from .broadcaster import PushBroadcaster, time_payload
from .channels import PushChannel, RpcChannel, WebSocketChannel
from .registry import TransportRegistry

__all__ = [
    "PushBroadcaster",
    "PushChannel",
    "RpcChannel",
    "TransportRegistry",
    "WebSocketChannel",
    "time_payload",
]
