from .client import Client, new
from .codec import Variants, decode, encode
from .config import ClientConfig, load_config
from .errors import (
    DecodeError,
    EncodeError,
    NexorError,
    NoResponders,
    PublishError,
    RemoteError,
    RequestTimeout,
    StreamNotFound,
    TransportError,
)
from .publisher import PubAck
from .streams import ACK_WAIT, StreamConfig
from .subscriber import AckResult, Consumer, Delivery, Subscription

__all__ = [
    "ACK_WAIT",
    "AckResult",
    "Client",
    "ClientConfig",
    "Consumer",
    "DecodeError",
    "Delivery",
    "EncodeError",
    "NexorError",
    "NoResponders",
    "PubAck",
    "PublishError",
    "RemoteError",
    "RequestTimeout",
    "StreamConfig",
    "StreamNotFound",
    "Subscription",
    "TransportError",
    "Variants",
    "decode",
    "encode",
    "load_config",
    "new",
]
