import logging
import sys

import pika

from .errors import TransportError
from .streams import RETAIN_ALL, routing_key, stream_queue

connection_logger = logging.getLogger("nexor.connection")


class ConnectionManager:
    """Owns the single broker connection and the messaging channel derived from it."""

    def __init__(self, config, connection_factory=None):
        self.config = config
        self._connection_factory = connection_factory or pika.BlockingConnection
        self._connection = None
        self._channel = None
        self._streams = {}

    def parameters(self):
        """Builds pika connection parameters from the resolved config."""
        params = pika.URLParameters(self.config.url)
        params.connection_attempts = max(self.config.max_reconnects, 1)
        params.retry_delay = self.config.reconnect_wait
        params.client_properties = {"connection_name": self.config.client_name}
        return params

    def connect(self):
        """Establishes the connection and the messaging channel. Exits the process on failure."""
        if self._connection is not None and self._connection.is_open:
            return

        try:
            self._connection = self._connection_factory(self.parameters())
        except (pika.exceptions.AMQPError, ValueError) as e:
            if self.config.debug:
                connection_logger.error(f"[Connection] Failed to connect to broker at {self.config.url}: {e}")
            sys.exit(1)

        try:
            self._channel = self._open_messaging_channel()
        except pika.exceptions.AMQPError as e:
            if self.config.debug:
                connection_logger.error(f"[Connection] Failed to open messaging channel: {e}")
            self._connection.close()
            sys.exit(1)

        connection_logger.debug(f"[Connection] Connected to broker as '{self.config.client_name}'")

    def _open_messaging_channel(self):
        channel = self._connection.channel()
        channel.confirm_delivery()
        return channel

    @property
    def connection(self):
        if self._connection is None or self._connection.is_closed:
            raise TransportError("Not connected, call connect() first")
        return self._connection

    @property
    def channel(self):
        """Messaging channel in confirm mode; recreated if the broker closed it."""
        connection = self.connection
        if self._channel is None or self._channel.is_closed:
            connection_logger.warning("[Connection] Messaging channel is closed. Recreating channel...")
            try:
                self._channel = self._open_messaging_channel()
            except pika.exceptions.AMQPError as e:
                raise TransportError(f"Failed to recreate messaging channel: {e}") from e
        return self._channel

    def open_channel(self, prefetch_count=None):
        """Opens a fresh channel on the shared connection for a consumer."""
        try:
            channel = self.connection.channel()
            if prefetch_count is not None:
                channel.basic_qos(prefetch_count=prefetch_count)
        except pika.exceptions.AMQPError as e:
            raise TransportError(f"Failed to open channel: {e}") from e
        return channel

    def create_stream(self, stream):
        """Creates or updates *stream*: a durable topic exchange fed by the
        client exchange for every subject of the stream, plus a durable
        retention queue holding everything the stream receives within its
        limits."""
        ch = self.channel
        queue = stream_queue(stream.name)
        try:
            ch.exchange_declare(exchange=stream.name, exchange_type="topic", durable=True)
            for subject in stream.subjects:
                ch.exchange_bind(destination=stream.name, source=self.config.exchange, routing_key=routing_key(subject))
            ch.queue_declare(queue=queue, durable=True, arguments=stream.queue_arguments())
            ch.queue_bind(queue=queue, exchange=stream.name, routing_key=RETAIN_ALL)
        except pika.exceptions.AMQPError as e:
            connection_logger.error(f"[Connection] Failed to create stream '{stream.name}': {e}")
            raise TransportError(f"Failed to create stream '{stream.name}': {e}") from e

        self._streams[stream.name] = stream
        connection_logger.debug(f"[Connection] Stream '{stream.name}' bound to subjects {list(stream.subjects)}")
        return stream

    def stream_config(self, name):
        return self._streams.get(name)

    def streams(self):
        return list(self._streams.values())

    def process_events(self, time_limit=0):
        try:
            self.connection.process_data_events(time_limit=time_limit)
        except pika.exceptions.AMQPError as e:
            raise TransportError(f"Connection failed while processing events: {e}") from e

    def add_callback_threadsafe(self, callback):
        self.connection.add_callback_threadsafe(callback)

    @property
    def is_connected(self):
        return self._connection is not None and self._connection.is_open

    def close(self):
        """Closes the connection if it is open. Safe to call more than once."""
        if self._connection is not None and not self._connection.is_closed:
            try:
                self._connection.close()
                connection_logger.info("[Connection] Broker connection closed.")
            except pika.exceptions.AMQPError as e:
                connection_logger.error(f"[Connection] Error closing broker connection: {e}")
        self._channel = None
