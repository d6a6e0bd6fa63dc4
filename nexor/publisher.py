import logging
from dataclasses import dataclass

import pika

from . import codec
from .errors import EncodeError, PublishError
from .streams import routing_key, subject_matches

publisher_logger = logging.getLogger("nexor.publisher")


@dataclass(frozen=True)
class PubAck:
    """Broker confirmation for one published message."""
    stream: str
    sequence: int
    duplicate: bool = False


class Publisher:
    """Publishes protobuf messages on subjects through the messaging channel."""

    def __init__(self, manager):
        self._manager = manager
        self._sequence = 0

    def publish(self, subject, message, *, msg_id=None, headers=None):
        """Encodes *message* and publishes it on *subject*.

        Raises EncodeError without touching the broker when the message cannot
        be serialized, and PublishError when the broker does not confirm it.
        """
        try:
            data = codec.encode(message)
        except EncodeError as e:
            publisher_logger.debug(f"[Publisher] Failed to encode message for '{subject}': {e}")
            raise

        exchange = self._manager.config.exchange
        properties = pika.BasicProperties(
            content_type=codec.CONTENT_TYPE,
            type=codec.type_name(message),
            delivery_mode=2,
            message_id=msg_id,
            headers=headers,
            app_id=self._manager.config.client_name,
        )

        try:
            self._manager.channel.basic_publish(
                exchange=exchange,
                routing_key=routing_key(subject),
                body=data,
                properties=properties,
                mandatory=True,
            )
        except pika.exceptions.UnroutableError as e:
            publisher_logger.debug(f"[Publisher] No stream captures subject '{subject}'")
            raise PublishError(f"No stream captures subject '{subject}'") from e
        except pika.exceptions.NackError as e:
            publisher_logger.debug(f"[Publisher] Broker rejected message on '{subject}'")
            raise PublishError(f"Broker rejected message on '{subject}'") from e
        except pika.exceptions.AMQPError as e:
            publisher_logger.debug(f"[Publisher] Failed to publish message on '{subject}': {e}")
            raise PublishError(f"Failed to publish message on '{subject}': {e}") from e

        self._sequence += 1
        ack = PubAck(stream=self._stream_for(subject) or exchange, sequence=self._sequence)
        publisher_logger.debug(f"[Publisher] Published on '{subject}' stream={ack.stream} sequence={ack.sequence} duplicate={ack.duplicate}")
        return ack

    def _stream_for(self, subject):
        for stream in self._manager.streams():
            if any(subject_matches(pattern, subject) for pattern in stream.subjects):
                return stream.name
        return None
