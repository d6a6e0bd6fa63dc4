"""Protobuf marshalling for message bodies.

Bodies are plain protobuf encodings. The message's full name travels in the
AMQP ``type`` property so that a :class:`Variants` factory can choose the
concrete class on the receiving side.
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Type, Union

from google.protobuf import message as pb_message

from .errors import DecodeError, EncodeError

CONTENT_TYPE = "application/x-protobuf"


class Variants:
    """Closed set of message classes accepted on one subject.

    Used in place of a plain factory when a subject carries more than one
    message type; the class is picked by the ``type`` property of the
    delivery, so handlers can branch with ``isinstance`` instead of casting.
    """

    def __init__(self, *classes: Type[pb_message.Message]) -> None:
        if not classes:
            raise ValueError("Variants needs at least one message class")
        self._classes: Dict[str, Type[pb_message.Message]] = {
            cls.DESCRIPTOR.full_name: cls for cls in classes
        }

    @property
    def names(self):
        return frozenset(self._classes)

    def new(self, name: Optional[str]) -> pb_message.Message:
        cls = self._classes.get(name) if name else None
        if cls is None:
            raise DecodeError(f"Unknown message type '{name}', expected one of {sorted(self._classes)}")
        return cls()


Factory = Union[Callable[[], pb_message.Message], Variants]


def type_name(message: pb_message.Message) -> str:
    return message.DESCRIPTOR.full_name


def encode(message: pb_message.Message) -> bytes:
    """Serialize *message*, raising EncodeError for anything that is not a
    fully initialized protobuf message."""
    if not isinstance(message, pb_message.Message):
        raise EncodeError(f"Expected a protobuf message, got {type(message).__name__}")
    try:
        return message.SerializeToString()
    except pb_message.EncodeError as e:
        raise EncodeError(f"Failed to encode {type_name(message)}: {e}") from e


def decode(data: bytes, factory: Factory, name: Optional[str] = None) -> pb_message.Message:
    """Parse *data* into a fresh message produced by *factory*.

    *name* is the ``type`` property of the delivery and is only consulted
    when *factory* is a :class:`Variants`.
    """
    if isinstance(factory, Variants):
        message = factory.new(name)
    else:
        message = factory()
    try:
        message.ParseFromString(data)
    except pb_message.DecodeError as e:
        raise DecodeError(f"Failed to decode {type_name(message)}: {e}") from e
    return message
