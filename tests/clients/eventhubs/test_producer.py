"""Tests for EventHubProducerClient."""

import pytest
from eventhub_fakes import CONNECTION_STRING, EVENT_HUB, NAMESPACE, make_events

from clients.eventhubs.errors import EventHubsClientClosedError, EventHubsError, FailureReason
from clients.eventhubs.models import EventData
from clients.eventhubs.options import (
    CreateBatchOptions,
    EventHubProducerClientOptions,
    SendOptions,
)
from clients.eventhubs.producer import EventHubProducerClient
from clients.eventhubs.retry import BasicRetryPolicy, EventHubsRetryOptions, EventHubsRetryPolicy
from clients.metrics import REGISTRY


@pytest.fixture
def producer(transport):
    return EventHubProducerClient.from_connection_string(CONNECTION_STRING, transport_client=transport)


def _sent_count(eventhub: str) -> float:
    return REGISTRY.get_sample_value("eventhubs_events_sent_total", {"eventhub": eventhub}) or 0.0


# =============================================================================
# Construction
# =============================================================================


class TestConstruction:
    def test_from_connection_string(self, producer):
        assert producer.fully_qualified_namespace == NAMESPACE
        assert producer.event_hub_name == EVENT_HUB
        assert isinstance(producer.retry_policy, BasicRetryPolicy)
        assert not producer.is_closed

    def test_custom_retry_policy_used(self, transport):
        class Policy(EventHubsRetryPolicy):
            def calculate_try_timeout(self, attempt_count):
                return 1.0

            def calculate_retry_delay(self, last_exception, attempt_count):
                return None

        policy = Policy()
        options = EventHubProducerClientOptions(
            retry_options=EventHubsRetryOptions(custom_retry_policy=policy)
        )
        producer = EventHubProducerClient.from_connection_string(
            CONNECTION_STRING, options=options, transport_client=transport
        )
        assert producer.retry_policy is policy

    def test_options_copied(self, transport):
        options = EventHubProducerClientOptions(retry_options=EventHubsRetryOptions(maximum_retries=2))
        producer = EventHubProducerClient.from_connection_string(
            CONNECTION_STRING, options=options, transport_client=transport
        )
        options.retry_options.maximum_retries = 9
        assert producer.options.retry_options.maximum_retries == 2

    def test_requires_connection(self):
        with pytest.raises(ValueError):
            EventHubProducerClient(None)

    async def test_metadata(self, producer, transport):
        assert (await producer.get_event_hub_properties()).partition_ids == ("0", "1")
        assert await producer.get_partition_ids() == ["0", "1"]
        assert (await producer.get_partition_properties("0")).last_enqueued_sequence_number == 41
        assert all(policy is producer.retry_policy for policy in transport.retry_policies)


# =============================================================================
# send
# =============================================================================


class TestSend:
    async def test_send_events(self, producer, transport):
        before = _sent_count(EVENT_HUB)
        events = make_events("a", "b")

        await producer.send(events)

        producer_link = transport.producers[0]
        assert producer_link.partition_id is None
        assert producer_link.retry_policy is producer.retry_policy
        assert producer_link.sent[0][0] == events
        assert _sent_count(EVENT_HUB) == before + 2

    async def test_send_to_partition_uses_partition_producer(self, producer, transport):
        await producer.send(make_events("a"), SendOptions(partition_id="1"))
        await producer.send(make_events("b"), SendOptions(partition_id="1"))
        await producer.send(make_events("c"))

        assert [p.partition_id for p in transport.producers] == ["1", None]
        assert len(transport.producers[0].sent) == 2

    async def test_send_with_partition_key(self, producer, transport):
        await producer.send(make_events("a"), SendOptions(partition_key="customer-1"))
        assert transport.producers[0].sent[0][1].partition_key == "customer-1"

    async def test_empty_send_rejected(self, producer):
        with pytest.raises(ValueError, match="At least one event"):
            await producer.send([])
        with pytest.raises(ValueError):
            await producer.send(None)

    async def test_key_and_partition_rejected(self, producer):
        with pytest.raises(ValueError, match="may not both be set"):
            await producer.send(make_events("a"), SendOptions(partition_key="k", partition_id="0"))

    async def test_send_failure_propagates(self, producer, transport):
        await producer.send(make_events("warm-up"))
        transport.producers[0].send_error = EventHubsError("too big", FailureReason.MESSAGE_SIZE_EXCEEDED)

        with pytest.raises(EventHubsError) as exc_info:
            await producer.send(make_events("a"))
        assert exc_info.value.reason == FailureReason.MESSAGE_SIZE_EXCEEDED
        errors = REGISTRY.get_sample_value(
            "eventhubs_send_errors_total", {"eventhub": EVENT_HUB, "error_type": "EventHubsError"}
        )
        assert errors >= 1


# =============================================================================
# Batches
# =============================================================================


class TestBatches:
    async def test_create_and_send_batch(self, producer, transport):
        batch = await producer.create_batch(CreateBatchOptions(partition_key="k"))
        assert batch.try_add(EventData("a"))
        assert batch.try_add(EventData("b"))

        await producer.send_batch(batch)

        sent_events, send_options = transport.producers[0].sent[0]
        assert [e.body for e in sent_events] == [b"a", b"b"]
        assert send_options.partition_key == "k"
        assert batch.is_sealed

    async def test_batch_size_from_options(self, producer):
        batch = await producer.create_batch(CreateBatchOptions(maximum_size_in_bytes=100))
        assert batch.maximum_size_in_bytes == 100

    async def test_sent_batch_cannot_be_resent(self, producer):
        batch = await producer.create_batch()
        batch.try_add(EventData("a"))
        await producer.send_batch(batch)

        with pytest.raises(RuntimeError):
            await producer.send_batch(batch)
        with pytest.raises(RuntimeError):
            batch.try_add(EventData("b"))

    async def test_empty_batch_rejected(self, producer):
        batch = await producer.create_batch()
        with pytest.raises(ValueError, match="no events"):
            await producer.send_batch(batch)

    async def test_failed_batch_not_sealed(self, producer, transport):
        batch = await producer.create_batch()
        batch.try_add(EventData("a"))
        transport.producers[0].send_error = EventHubsError("busy", FailureReason.SERVICE_BUSY)

        with pytest.raises(EventHubsError):
            await producer.send_batch(batch)
        assert not batch.is_sealed


# =============================================================================
# Lifecycle
# =============================================================================


class TestClose:
    async def test_close_releases_producers_and_owned_connection(self, producer, transport):
        await producer.send(make_events("a"))
        await producer.send(make_events("b"), SendOptions(partition_id="0"))

        await producer.close()

        assert producer.is_closed
        assert all(p.closed for p in transport.producers)
        assert transport.closed

    async def test_shared_connection_left_open(self, connection, transport):
        producer = EventHubProducerClient(connection)
        await producer.close()
        assert not transport.closed
        assert not connection.is_closed

    async def test_closed_client_rejects_operations(self, producer):
        await producer.close()
        with pytest.raises(EventHubsClientClosedError):
            await producer.send(make_events("a"))
        with pytest.raises(EventHubsClientClosedError):
            await producer.create_batch()
        with pytest.raises(EventHubsClientClosedError):
            await producer.get_partition_ids()

    async def test_close_error_raised_after_cleanup(self, producer, transport):
        await producer.send(make_events("a"))
        await producer.send(make_events("b"), SendOptions(partition_id="0"))
        transport.producers[0].close_error = RuntimeError("link stuck")

        with pytest.raises(RuntimeError, match="link stuck"):
            await producer.close()

        assert transport.producers[1].closed
        assert transport.closed

    async def test_close_is_idempotent(self, producer):
        await producer.close()
        await producer.close()

    async def test_async_context_manager(self, transport):
        async with EventHubProducerClient.from_connection_string(
            CONNECTION_STRING, transport_client=transport
        ) as producer:
            await producer.send(make_events("a"))
        assert transport.closed
