import logging
import time
import uuid

import pika

from . import codec
from .errors import DecodeError, EncodeError, NoResponders, RemoteError, RequestTimeout, TransportError
from .streams import routing_key

request_logger = logging.getLogger("nexor.request")

REPLY_TO = "amq.rabbitmq.reply-to"
ERROR_HEADER = "nexor-error"


class Requester:
    """Synchronous request/reply over RabbitMQ direct reply-to."""

    def __init__(self, manager):
        self._manager = manager
        self._channel = None
        self._pending = set()
        self._responses = {}

    def _reply_channel(self):
        if self._channel is None or self._channel.is_closed:
            ch = self._manager.open_channel()
            ch.basic_consume(queue=REPLY_TO, on_message_callback=self._on_response, auto_ack=True)
            ch.confirm_delivery()
            self._channel = ch
        return self._channel

    def _on_response(self, _ch, _method, properties, body):
        correlation_id = properties.correlation_id
        if correlation_id in self._pending:
            self._responses[correlation_id] = (properties, body)
        else:
            request_logger.debug(f"[Requester] Dropping late or unknown reply {correlation_id}")

    def request(self, subject, message, reply_factory, timeout):
        """Sends *message* on *subject* and blocks until the reply arrives or
        *timeout* seconds pass. Returns the reply decoded with *reply_factory*."""
        try:
            data = codec.encode(message)
        except EncodeError as e:
            request_logger.debug(f"[Requester] Failed to encode request for '{subject}': {e}")
            raise

        correlation_id = uuid.uuid4().hex
        properties = pika.BasicProperties(
            content_type=codec.CONTENT_TYPE,
            type=codec.type_name(message),
            reply_to=REPLY_TO,
            correlation_id=correlation_id,
            expiration=str(max(int(timeout * 1000), 1)),
        )

        self._pending.add(correlation_id)
        try:
            try:
                ch = self._reply_channel()
                ch.basic_publish(
                    exchange=self._manager.config.exchange,
                    routing_key=routing_key(subject),
                    body=data,
                    properties=properties,
                    mandatory=True,
                )
            except pika.exceptions.UnroutableError as e:
                request_logger.debug(f"[Requester] No responders on '{subject}'")
                raise NoResponders(f"No responders available for '{subject}'") from e
            except pika.exceptions.AMQPError as e:
                request_logger.debug(f"[Requester] Request on '{subject}' failed: {e}")
                raise TransportError(f"Request on '{subject}' failed: {e}") from e

            deadline = time.monotonic() + timeout
            while correlation_id not in self._responses:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    request_logger.debug(f"[Requester] Request on '{subject}' timed out after {timeout}s")
                    raise RequestTimeout(f"No reply on '{subject}' within {timeout}s")
                self._manager.process_events(time_limit=remaining)

            reply_properties, body = self._responses.pop(correlation_id)
        finally:
            self._pending.discard(correlation_id)
            self._responses.pop(correlation_id, None)

        headers = reply_properties.headers or {}
        if ERROR_HEADER in headers:
            raise RemoteError(f"Replier on '{subject}' failed: {headers[ERROR_HEADER]}")

        try:
            return codec.decode(body, reply_factory, reply_properties.type)
        except DecodeError as e:
            request_logger.debug(f"[Requester] Failed to decode reply from '{subject}': {e}")
            raise
