import logging
import threading

from .config import load_config
from .connection import ConnectionManager
from .logger import enable_debug
from .publisher import Publisher
from .reply import Replier
from .request import Requester
from .subscriber import Subscriber

client_logger = logging.getLogger("nexor.client")

POLL_INTERVAL = 1.0


class Client:
    """Protobuf publish/subscribe/request/reply on one shared broker connection.

    Build one instance at start-up, call ``connect()`` and hand the instance to
    whatever needs to talk to the broker. Subscriptions and repliers are served
    while ``run()`` drives the connection.
    """

    def __init__(self, url=None, *, config=None, connection_factory=None):
        self.config = config or load_config(url)
        enable_debug(self.config.debug)
        self._manager = ConnectionManager(self.config, connection_factory)
        self._publisher = Publisher(self._manager)
        self._subscriber = Subscriber(self._manager)
        self._requester = Requester(self._manager)
        self._replier = Replier(self._manager)
        self._subscriptions = []
        self._stop_event = threading.Event()

    def connect(self):
        self._manager.connect()

    @property
    def channel(self):
        """Raw messaging channel for operations this client does not wrap."""
        return self._manager.channel

    def create_stream(self, stream):
        return self._manager.create_stream(stream)

    def publish(self, subject, message, **kwargs):
        return self._publisher.publish(subject, message, **kwargs)

    def subscribe(self, subject, stream, durable, factory, handler, **kwargs):
        subscription = self._subscriber.subscribe(subject, stream, durable, factory, handler, **kwargs)
        self._subscriptions.append(subscription)
        return subscription

    def subscribe_consumer(self, subject, stream, durable, consumer, **kwargs):
        subscription = self._subscriber.subscribe_consumer(subject, stream, durable, consumer, **kwargs)
        self._subscriptions.append(subscription)
        return subscription

    def request(self, subject, message, reply_factory, timeout):
        return self._requester.request(subject, message, reply_factory, timeout)

    def reply(self, subject, request_factory, handler, **kwargs):
        subscription = self._replier.reply(subject, request_factory, handler, **kwargs)
        self._subscriptions.append(subscription)
        return subscription

    def run(self, stop_event=None):
        """Dispatches deliveries until ``stop()`` is called or *stop_event* is set.

        Each call starts a fresh loop, so a client stopped once can run again.
        """
        self._stop_event.clear()
        stop_event = stop_event or self._stop_event
        client_logger.debug(f"[Client] Waiting for messages on {len(self._subscriptions)} subscription(s)")
        try:
            while not stop_event.is_set() and not self._stop_event.is_set():
                self._manager.process_events(time_limit=POLL_INTERVAL)
        except KeyboardInterrupt:
            client_logger.info("[Client] Stopped by user")

    def stop(self):
        """Asks a running ``run()`` loop to return. Safe to call from any thread."""
        self._stop_event.set()
        if self._manager.is_connected:
            self._manager.add_callback_threadsafe(lambda: None)

    def close(self):
        self._stop_event.set()
        for subscription in self._subscriptions:
            if self._manager.is_connected:
                subscription.unsubscribe()
        self._subscriptions.clear()
        self._manager.close()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *exc_info):
        self.close()


def new(url=None, **kwargs):
    """Builds a client from environment config; call ``connect()`` before use."""
    return Client(url, **kwargs)
