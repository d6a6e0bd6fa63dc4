"""Durable consumers with handler-decided acknowledgement."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

import pika
from google.protobuf.message import Message

from . import codec
from .errors import DecodeError, StreamNotFound, TransportError
from .streams import consumer_arguments, consumer_queue, routing_key

subscriber_logger = logging.getLogger("nexor.subscriber")

DEFAULT_PREFETCH = 1


class AckResult(enum.Enum):
    """What the broker should do with a delivery once the handler is done."""
    ACK = "ack"    # processed, remove it
    NAK = "nak"    # redeliver
    TERM = "term"  # never redeliver


@dataclass(frozen=True)
class Delivery:
    subject: str
    stream: str
    durable: str
    delivery_tag: int
    redelivered: bool = False
    message_type: Optional[str] = None
    headers: Dict[str, Any] = field(default_factory=dict)


Handler = Callable[[Message, Delivery], AckResult]


class Consumer(ABC):
    """A subscriber bundling its message type with its handler."""

    @abstractmethod
    def message(self) -> Message:
        """Return an empty instance of the message type this consumer handles."""

    @abstractmethod
    def handle(self, message: Message, delivery: Delivery) -> AckResult:
        pass


class Subscription:
    """A consumer registered on its own channel."""

    def __init__(self, channel, queue: str, consumer_tag: str, subject: str) -> None:
        self.channel = channel
        self.queue = queue
        self.consumer_tag: Optional[str] = consumer_tag
        self.subject = subject

    @property
    def active(self) -> bool:
        return self.consumer_tag is not None and self.channel.is_open

    def unsubscribe(self) -> None:
        """Cancels the consumer and closes its channel."""
        if self.consumer_tag is None:
            return
        try:
            if self.channel.is_open:
                self.channel.basic_cancel(self.consumer_tag)
                self.channel.close()
            subscriber_logger.info(f"[Subscriber] Cancelled consumer on queue '{self.queue}'")
        except pika.exceptions.AMQPError as e:
            subscriber_logger.error(f"[Subscriber] Error cancelling consumer on queue '{self.queue}': {e}")
        finally:
            self.consumer_tag = None


class Subscriber:
    def __init__(self, manager) -> None:
        self._manager = manager

    def subscribe(
        self,
        subject: str,
        stream: str,
        durable: str,
        factory: codec.Factory,
        handler: Handler,
        *,
        prefetch: int = DEFAULT_PREFETCH,
    ) -> Subscription:
        """Creates or updates the durable consumer *durable* on *stream*,
        filtered to *subject*, and starts delivering to *handler*.

        The handler decides the fate of every message it sees by returning an
        AckResult; the subscriber only NAKs on its own when decoding or the
        handler fails.
        """
        ch = self._manager.open_channel(prefetch_count=prefetch)
        try:
            ch.exchange_declare(exchange=stream, exchange_type="topic", passive=True)
        except pika.exceptions.ChannelClosedByBroker as e:
            raise StreamNotFound(f"Stream '{stream}' does not exist: {e}") from e

        queue = consumer_queue(stream, durable)
        try:
            ch.queue_declare(
                queue=queue,
                durable=True,
                arguments=consumer_arguments(self._manager.stream_config(stream)),
            )
            ch.queue_bind(queue=queue, exchange=stream, routing_key=routing_key(subject))

            def on_message(channel, method, properties, body):
                self._dispatch(channel, method, properties, body, stream, durable, factory, handler)

            consumer_tag = ch.basic_consume(queue=queue, on_message_callback=on_message, auto_ack=False)
        except pika.exceptions.AMQPError as e:
            subscriber_logger.error(f"[Subscriber] Failed to create consumer '{durable}' on stream '{stream}': {e}")
            raise TransportError(f"Failed to create consumer '{durable}' on stream '{stream}': {e}") from e

        subscriber_logger.debug(f"[Subscriber] Subscribed to '{subject}' on stream '{stream}' as '{durable}'")
        return Subscription(ch, queue, consumer_tag, subject)

    def subscribe_consumer(self, subject: str, stream: str, durable: str, consumer: Consumer, **kwargs) -> Subscription:
        return self.subscribe(subject, stream, durable, consumer.message, consumer.handle, **kwargs)

    def _dispatch(self, ch, method, properties, body, stream, durable, factory, handler) -> None:
        tag = method.delivery_tag
        try:
            message = codec.decode(body, factory, properties.type)
        except DecodeError as e:
            subscriber_logger.debug(f"[Subscriber] Failed to decode message on '{method.routing_key}': {e}")
            ch.basic_nack(delivery_tag=tag, requeue=True)
            return

        delivery = Delivery(
            subject=method.routing_key,
            stream=stream,
            durable=durable,
            delivery_tag=tag,
            redelivered=bool(method.redelivered),
            message_type=properties.type,
            headers=dict(properties.headers or {}),
        )

        try:
            result = handler(message, delivery)
        except Exception as e:
            subscriber_logger.debug(f"[Subscriber] Handler error on '{delivery.subject}': {e}")
            ch.basic_nack(delivery_tag=tag, requeue=True)
            return

        if result is AckResult.ACK:
            ch.basic_ack(delivery_tag=tag)
        elif result is AckResult.TERM:
            ch.basic_reject(delivery_tag=tag, requeue=False)
        else:
            if result is not AckResult.NAK:
                subscriber_logger.warning(f"[Subscriber] Handler for '{delivery.subject}' returned {result!r} instead of an AckResult")
            ch.basic_nack(delivery_tag=tag, requeue=True)
