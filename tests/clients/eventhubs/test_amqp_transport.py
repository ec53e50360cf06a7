"""Tests for the azure-eventhub backed transport, with the SDK clients patched out."""

import asyncio
from datetime import UTC, datetime
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from azure.core.credentials import AzureSasCredential
from azure.eventhub import TransportType as SdkTransportType
from azure.eventhub import exceptions as sdk_errors
from eventhub_fakes import EVENT_HUB, NAMESPACE

from clients.eventhubs.authorization import SharedAccessSignature, SharedAccessSignatureCredential
from clients.eventhubs.errors import EventHubsClientClosedError, EventHubsError, FailureReason
from clients.eventhubs.models import EventData, EventPosition
from clients.eventhubs.options import (
    CreateBatchOptions,
    EventHubConnectionOptions,
    SendOptions,
    TransportType,
)
from clients.eventhubs.retry import BasicRetryPolicy, EventHubsRetryMode, EventHubsRetryOptions
from clients.eventhubs.transport.amqp import (
    AmqpTransportClient,
    from_sdk_event,
    to_sdk_event,
    to_starting_position,
)

ENQUEUED = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


def sdk_event(body: bytes, sequence_number: int) -> SimpleNamespace:
    return SimpleNamespace(
        body=[body],
        properties={b"kind": b"order"},
        system_properties={b"x-opt-sequence-number": sequence_number},
        sequence_number=sequence_number,
        offset=sequence_number * 100,
        enqueued_time=ENQUEUED,
        partition_key=b"customer-1",
    )


@pytest.fixture
def retry_policy():
    return BasicRetryPolicy(
        EventHubsRetryOptions(
            mode=EventHubsRetryMode.FIXED, maximum_retries=2, delay=0.001, maximum_delay=0.01
        )
    )


@pytest.fixture
def client():
    return AmqpTransportClient(NAMESPACE, EVENT_HUB, MagicMock(name="credential"))


class FakeSdkConsumer:
    """Stands in for ``azure.eventhub.aio.EventHubConsumerClient``."""

    def __init__(self, client_kwargs, batches, error):
        self.client_kwargs = client_kwargs
        self.batches = batches
        self.error = error
        self.receive_kwargs = None
        self.closed = False

    async def receive_batch(self, **kwargs):
        self.receive_kwargs = kwargs
        context = SimpleNamespace(
            last_enqueued_event_properties={
                "sequence_number": 99,
                "offset": 9900,
                "enqueued_time": ENQUEUED,
                "retrieved_time": ENQUEUED,
            }
        )
        for batch in self.batches:
            await kwargs["on_event_batch"](context, batch)
        if self.error is not None:
            await kwargs["on_error"](context, self.error)
        await asyncio.Event().wait()

    async def close(self):
        self.closed = True


class CrashingSdkConsumer(FakeSdkConsumer):
    async def receive_batch(self, **kwargs):
        self.receive_kwargs = kwargs
        raise self.error or RuntimeError("link detached")


class FakeSdkBatch:
    """Envelope plus body lengths; raises ValueError when full, like the SDK batch."""

    def __init__(self, max_size_in_bytes: int, envelope: int = 5):
        self.max_size_in_bytes = max_size_in_bytes
        self.size_in_bytes = envelope
        self.added = []

    def add(self, event) -> None:
        size = self.size_in_bytes + len(event.body_as_str())
        if size > self.max_size_in_bytes:
            raise ValueError("EventDataBatch has reached its size limit")
        self.added.append(event)
        self.size_in_bytes = size


class SdkConsumerFactory:
    def __init__(self, *scripts, consumer_class=FakeSdkConsumer):
        self.scripts = list(scripts)
        self.consumer_class = consumer_class
        self.created: list[FakeSdkConsumer] = []

    def __call__(self, **kwargs):
        batches, error = self.scripts.pop(0) if self.scripts else ([], None)
        consumer = self.consumer_class(kwargs, batches, error)
        self.created.append(consumer)
        return consumer


# =============================================================================
# Model conversion
# =============================================================================


class TestConversion:
    def test_to_sdk_event(self):
        sdk = to_sdk_event(EventData("hello", {"kind": "order"}))
        assert sdk.body_as_str() == "hello"
        assert sdk.properties == {"kind": "order"}

    def test_from_sdk_event(self):
        event = from_sdk_event(sdk_event(b"payload", 7))

        assert event.body == b"payload"
        assert event.properties == {"kind": "order"}
        assert event.sequence_number == 7
        assert event.offset == "700"
        assert event.enqueued_time == ENQUEUED
        assert event.partition_key == "customer-1"
        assert event.system_properties == {"x-opt-sequence-number": 7}

    @pytest.mark.parametrize(
        "position,expected",
        [
            (EventPosition.earliest(), ("-1", False)),
            (EventPosition.latest(), ("@latest", False)),
            (EventPosition.from_offset("1024"), ("1024", True)),
            (EventPosition.from_sequence_number(5, is_inclusive=False), (5, False)),
        ],
    )
    def test_starting_position(self, position, expected):
        assert to_starting_position(position) == expected

    def test_starting_position_from_time(self):
        assert to_starting_position(EventPosition.from_enqueued_time(ENQUEUED)) == (ENQUEUED, False)


# =============================================================================
# Client
# =============================================================================


class TestClientKwargs:
    def test_sdk_retries_disabled(self, client):
        kwargs = client.client_kwargs()

        assert kwargs["retry_total"] == 0
        assert kwargs["fully_qualified_namespace"] == NAMESPACE
        assert kwargs["eventhub_name"] == EVENT_HUB
        assert kwargs["transport_type"] == SdkTransportType.Amqp
        assert "http_proxy" not in kwargs

    def test_web_sockets_with_proxy(self):
        options = EventHubConnectionOptions(
            transport_type=TransportType.AMQP_WEBSOCKETS, proxy={"proxy_hostname": "proxy.local"}
        )
        client = AmqpTransportClient(NAMESPACE, EVENT_HUB, MagicMock(), options)

        kwargs = client.client_kwargs()

        assert kwargs["transport_type"] == SdkTransportType.AmqpOverWebsocket
        assert kwargs["http_proxy"] == {"proxy_hostname": "proxy.local"}

    def test_signature_passed_as_sas_credential(self):
        signature = SharedAccessSignature(
            f"amqps://{NAMESPACE}/{EVENT_HUB}", "RootManageSharedAccessKey", "c2VjcmV0a2V5"
        )
        client = AmqpTransportClient(NAMESPACE, EVENT_HUB, SharedAccessSignatureCredential(signature))

        credential = client.client_kwargs()["credential"]

        assert isinstance(credential, AzureSasCredential)
        assert credential.signature == signature.value


class TestManagement:
    async def test_get_properties(self, client, retry_policy):
        sdk = MagicMock()

        async def get_eventhub_properties():
            return {"eventhub_name": EVENT_HUB, "created_at": ENQUEUED, "partition_ids": ["0", "1"]}

        sdk.get_eventhub_properties = get_eventhub_properties
        with patch("clients.eventhubs.transport.amqp.SdkProducerClient", return_value=sdk):
            properties = await client.get_properties(retry_policy)

        assert properties.name == EVENT_HUB
        assert properties.partition_ids == ("0", "1")
        assert properties.created_on == ENQUEUED

    async def test_sdk_errors_translated_and_not_retried(self, client, retry_policy):
        calls = []

        async def get_eventhub_properties():
            calls.append(1)
            raise sdk_errors.AuthenticationError("unauthorized")

        sdk = MagicMock(get_eventhub_properties=get_eventhub_properties)
        with patch("clients.eventhubs.transport.amqp.SdkProducerClient", return_value=sdk):
            with pytest.raises(EventHubsError) as exc_info:
                await client.get_properties(retry_policy)

        assert not exc_info.value.is_transient
        assert isinstance(exc_info.value.__cause__, sdk_errors.AuthenticationError)
        assert len(calls) == 1

    async def test_closed_client(self, client, retry_policy):
        await client.close()
        assert client.is_closed
        with pytest.raises(EventHubsClientClosedError):
            client.create_producer(None, retry_policy)


class TestProducer:
    async def test_send_routes_by_partition_key(self, client, retry_policy):
        sent = []

        async def send_batch(events, timeout=None, **routing):
            sent.append((events, routing))

        sdk = MagicMock(send_batch=send_batch)
        producer = client.create_producer(None, retry_policy)
        with patch("clients.eventhubs.transport.amqp.SdkProducerClient", return_value=sdk):
            await producer.send([EventData("a"), EventData("b")], SendOptions(partition_key="k"))

        ((events, routing),) = sent
        assert [e.body_as_str() for e in events] == ["a", "b"]
        assert routing == {"partition_key": "k"}

    async def test_partition_producer_ignores_key(self, client, retry_policy):
        sent = []

        async def send_batch(events, timeout=None, **routing):
            sent.append(routing)

        sdk = MagicMock(send_batch=send_batch)
        producer = client.create_producer("1", retry_policy)
        with patch("clients.eventhubs.transport.amqp.SdkProducerClient", return_value=sdk):
            await producer.send([EventData("a")], SendOptions())

        assert sent == [{"partition_id": "1"}]

    async def test_create_batch_sized_by_sdk_batch(self, client, retry_policy):
        sdk_batch = FakeSdkBatch(max_size_in_bytes=40)
        requested = {}

        async def create_batch(**kwargs):
            requested.update(kwargs)
            return sdk_batch

        sdk = MagicMock(create_batch=create_batch)
        producer = client.create_producer(None, retry_policy)
        with patch("clients.eventhubs.transport.amqp.SdkProducerClient", return_value=sdk):
            batch = await producer.create_batch(CreateBatchOptions(partition_key="k"))

        assert requested == {"max_size_in_bytes": None, "partition_key": "k"}
        assert batch.maximum_size_in_bytes == 40
        assert batch.try_add(EventData("x" * 10))
        assert batch.size_in_bytes == 15
        assert not batch.try_add(EventData("y" * 30))
        assert batch.count == 1
        assert [e.body_as_str() for e in sdk_batch.added] == ["x" * 10]


# =============================================================================
# Consumer
# =============================================================================


class TestConsumer:
    async def test_receive_converts_and_tracks(self, client, retry_policy):
        factory = SdkConsumerFactory(([[sdk_event(b"a", 1), sdk_event(b"b", 2)]], None))
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy, owner_level=3)

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            events = await consumer.receive(10, 1.0)
            await consumer.close()

        assert [e.body for e in events] == [b"a", b"b"]
        assert consumer.last_received_event_properties.sequence_number == 99
        assert consumer.last_received_event_properties.offset == "9900"

        (sdk,) = factory.created
        assert sdk.client_kwargs["consumer_group"] == "$Default"
        assert sdk.receive_kwargs["partition_id"] == "0"
        assert sdk.receive_kwargs["starting_position"] == "-1"
        assert sdk.receive_kwargs["owner_level"] == 3
        assert sdk.closed

    async def test_receive_times_out_empty(self, client, retry_policy):
        factory = SdkConsumerFactory(([], None))
        consumer = client.create_consumer("$Default", "0", EventPosition.latest(), retry_policy)

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            assert await consumer.receive(10, 0.01) == []
            await consumer.close()

    async def test_failure_then_resume_after_last_event(self, client, retry_policy):
        factory = SdkConsumerFactory(
            ([[sdk_event(b"a", 1)]], sdk_errors.ConnectionLostError("link detached")),
            ([[sdk_event(b"b", 2)]], None),
        )
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy)

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            first = await consumer.receive(10, 1.0)
            with pytest.raises(EventHubsError) as exc_info:
                await consumer.receive(10, 1.0)
            second = await consumer.receive(10, 1.0)
            await consumer.close()

        assert [e.body for e in first] == [b"a"]
        assert exc_info.value.reason == FailureReason.SERVICE_COMMUNICATION_PROBLEM
        assert [e.body for e in second] == [b"b"]
        assert factory.created[0].closed
        assert factory.created[1].receive_kwargs["starting_position"] == "100"
        assert factory.created[1].receive_kwargs["starting_position_inclusive"] is False

    async def test_crashed_receive_task_is_raised_and_client_closed(self, client, retry_policy):
        factory = SdkConsumerFactory(consumer_class=CrashingSdkConsumer)
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy)

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            with pytest.raises(RuntimeError, match="link detached"):
                await consumer.receive(10, 1.0)
            with pytest.raises(RuntimeError, match="link detached"):
                await consumer.receive(10, 1.0)
            await consumer.close()

        assert len(factory.created) == 2
        assert all(sdk.closed for sdk in factory.created)

    async def test_crashed_receive_task_error_is_translated(self, client, retry_policy):
        factory = SdkConsumerFactory(
            ([], sdk_errors.ConnectError("amqp:connection:forced")),
            consumer_class=CrashingSdkConsumer,
        )
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy)

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            with pytest.raises(EventHubsError) as exc_info:
                await consumer.receive(10, 1.0)
            await consumer.close()

        assert exc_info.value.reason == FailureReason.SERVICE_COMMUNICATION_PROBLEM
        assert exc_info.value.is_transient
        assert factory.created[0].closed

    async def test_zero_prefetch_is_kept(self, client, retry_policy):
        factory = SdkConsumerFactory(([], None))
        consumer = client.create_consumer(
            "$Default", "0", EventPosition.earliest(), retry_policy, prefetch_count=0
        )

        with patch("clients.eventhubs.transport.amqp.SdkConsumerClient", new=factory):
            assert await consumer.receive(10, 0.01) == []
            await consumer.close()

        assert consumer.prefetch_count == 0
        (sdk,) = factory.created
        assert sdk.receive_kwargs["prefetch"] == 0
        assert sdk.receive_kwargs["max_batch_size"] == 1

    async def test_default_prefetch(self, client, retry_policy):
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy)

        assert consumer.prefetch_count == 300

    async def test_receive_after_close(self, client, retry_policy):
        consumer = client.create_consumer("$Default", "0", EventPosition.earliest(), retry_policy)
        await consumer.close()

        assert consumer.is_closed
        with pytest.raises(EventHubsClientClosedError):
            await consumer.receive(10, 0.01)
