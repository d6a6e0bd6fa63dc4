import pika
import pytest

from nexor import Client, ClientConfig, StreamConfig
from nexor.connection import ConnectionManager
from nexor.errors import TransportError


def test_connect_builds_parameters_from_config(client, fake_connection):
    params = fake_connection.parameters

    assert params.host == "localhost"
    assert params.connection_attempts == 5
    assert params.retry_delay == 5
    assert params.client_properties == {"connection_name": "Tests"}


def test_connect_opens_confirming_channel(client, fake_connection):
    assert len(fake_connection.channels) == 1
    assert client.channel is fake_connection.channels[0]
    assert client.channel.confirming


def test_connect_twice_reuses_connection(client, fake_connection):
    client.connect()
    assert len(fake_connection.channels) == 1


def test_connect_failure_exits(config):
    def factory(_parameters):
        raise pika.exceptions.AMQPConnectionError("refused")

    client = Client(config=config, connection_factory=factory)
    with pytest.raises(SystemExit) as exc_info:
        client.connect()
    assert exc_info.value.code == 1


def test_operations_need_a_connection(config):
    manager = ConnectionManager(config)
    with pytest.raises(TransportError):
        manager.channel


def test_closed_channel_is_recreated(client, fake_connection):
    fake_connection.channels[0].close()

    channel = client.channel

    assert channel is fake_connection.channels[1]
    assert channel.confirming


def test_close_is_idempotent(client, fake_connection):
    client.close()
    client.close()
    assert fake_connection.is_closed


def test_create_stream_binds_every_subject(client, fake_connection):
    stream = StreamConfig(name="product_stream", subjects=["sample.>", "audit.*"])

    client.create_stream(stream)

    assert fake_connection.exchanges["product_stream"] == "topic"
    assert fake_connection.exchange_bindings == [
        ("product_stream", "amq.topic", "sample.#"),
        ("product_stream", "amq.topic", "audit.*"),
    ]


def test_create_stream_failure_raises(client, fake_connection, monkeypatch):
    def broken(**_kwargs):
        raise pika.exceptions.ChannelClosedByBroker(406, "PRECONDITION_FAILED")

    monkeypatch.setattr(client.channel, "exchange_declare", broken)

    with pytest.raises(TransportError):
        client.create_stream(StreamConfig(name="orders", subjects=["orders.>"]))


def test_stop_ends_run_loop(client, fake_connection):
    fake_connection.on_process = client.stop

    client.run()

    assert fake_connection.callbacks


def test_create_stream_retains_messages(client, fake_connection):
    stream = StreamConfig(name="product_stream", subjects=["sample.>"], max_msgs=10, max_bytes=2048, max_age=60)

    client.create_stream(stream)

    queue = client.channel.queues["product_stream"]
    assert queue.durable
    assert queue.arguments == {"x-max-length": 10, "x-max-length-bytes": 2048, "x-message-ttl": 60000}
    assert fake_connection.queue_bindings == [("product_stream", "product_stream", "#")]


def test_malformed_url_exits(config):
    bad = ClientConfig(url="redis://localhost:6379", client_name="Tests")
    client = Client(config=bad, connection_factory=lambda parameters: pytest.fail("must not connect"))

    with pytest.raises(SystemExit) as exc_info:
        client.connect()
    assert exc_info.value.code == 1


def test_run_again_after_stop(client, fake_connection):
    calls = []

    def stop_after_two():
        calls.append(1)
        if len(calls) % 2 == 0:
            client.stop()

    fake_connection.on_process = stop_after_two

    client.run()
    client.run()

    assert len(calls) == 4
