import logging

import pika

from . import codec
from .errors import DecodeError, EncodeError, TransportError
from .request import ERROR_HEADER
from .streams import routing_key
from .subscriber import Subscription

reply_logger = logging.getLogger("nexor.reply")


class Replier:
    """Serves requests on a subject, answering each one on its reply-to address."""

    def __init__(self, manager):
        self._manager = manager

    def reply(self, subject, request_factory, handler, *, queue=None):
        """Subscribes to *subject* and answers every request with *handler*'s response.

        Without *queue* every replier gets its own exclusive queue; repliers
        sharing a *queue* name split the requests between them.
        """
        ch = self._manager.open_channel()
        try:
            if queue is None:
                result = ch.queue_declare(queue="", exclusive=True, auto_delete=True)
            else:
                result = ch.queue_declare(queue=queue, durable=False, auto_delete=True)
            queue_name = result.method.queue
            ch.queue_bind(queue=queue_name, exchange=self._manager.config.exchange, routing_key=routing_key(subject))

            def on_request(channel, method, properties, body):
                self._serve(channel, method, properties, body, request_factory, handler)

            consumer_tag = ch.basic_consume(queue=queue_name, on_message_callback=on_request, auto_ack=True)
        except pika.exceptions.AMQPError as e:
            if self._manager.config.debug:
                reply_logger.error(f"[Replier] Failed to subscribe for reply on '{subject}': {e}")
            raise TransportError(f"Failed to subscribe for reply on '{subject}': {e}") from e

        reply_logger.debug(f"[Replier] Replying on '{subject}' from queue '{queue_name}'")
        return Subscription(ch, queue_name, consumer_tag, subject)

    def _serve(self, ch, method, properties, body, request_factory, handler):
        if not properties.reply_to:
            reply_logger.debug(f"[Replier] Request on '{method.routing_key}' has no reply-to, dropping it")
            return

        try:
            request = codec.decode(body, request_factory, properties.type)
        except DecodeError as e:
            reply_logger.debug(f"[Replier] Failed to decode request: {e}")
            return

        try:
            response = handler(request)
        except Exception as e:
            reply_logger.debug(f"[Replier] Request handler failed: {e}")
            self._respond(ch, properties, b"", headers={ERROR_HEADER: str(e) or type(e).__name__})
            return

        try:
            data = codec.encode(response)
        except EncodeError as e:
            reply_logger.debug(f"[Replier] Failed to encode response: {e}")
            return

        self._respond(ch, properties, data, message_type=codec.type_name(response))

    def _respond(self, ch, request_properties, data, message_type=None, headers=None):
        try:
            ch.basic_publish(
                exchange="",
                routing_key=request_properties.reply_to,
                body=data,
                properties=pika.BasicProperties(
                    content_type=codec.CONTENT_TYPE,
                    type=message_type,
                    correlation_id=request_properties.correlation_id,
                    headers=headers,
                ),
            )
        except pika.exceptions.AMQPError as e:
            reply_logger.error(f"[Replier] Failed to send response to {request_properties.reply_to}: {e}")
