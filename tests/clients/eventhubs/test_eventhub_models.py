"""Tests for Event Hubs events, positions, options and batches."""

import json
from datetime import UTC, datetime

import pytest
from pydantic import BaseModel

from clients.eventhubs.batch import BATCH_OVERHEAD_BYTES, EVENT_OVERHEAD_BYTES, EventDataBatch
from clients.eventhubs.errors import EventHubsClientClosedError
from clients.eventhubs.models import (
    EventData,
    EventPosition,
    LastEnqueuedEventProperties,
    PartitionContext,
    PartitionEvent,
)
from clients.eventhubs.options import (
    CreateBatchOptions,
    EventHubConnectionOptions,
    EventHubConsumerClientOptions,
    EventHubProducerClientOptions,
    ReadEventOptions,
    SendOptions,
    TransportType,
)
from clients.eventhubs.retry import EventHubsRetryOptions


class Order(BaseModel):
    order_id: str
    quantity: int


# =============================================================================
# EventData
# =============================================================================


class TestEventData:
    def test_string_body_encoded(self):
        event = EventData("hello", {"kind": "greeting"})
        assert event.body == b"hello"
        assert event.body_as_str() == "hello"
        assert event.properties == {"kind": "greeting"}

    def test_empty_body(self):
        assert EventData().body == b""

    def test_from_value(self):
        assert EventData.from_value(b"raw").body == b"raw"
        assert EventData.from_value(Order(order_id="A1", quantity=2)).body_as_json() == {
            "order_id": "A1",
            "quantity": 2,
        }
        event = EventData.from_value({"at": datetime(2024, 1, 1, tzinfo=UTC)})
        assert json.loads(event.body) == {"at": "2024-01-01T00:00:00+00:00"}

    def test_size_counts_body_properties_and_key(self):
        event = EventData(b"12345", {"ab": "cd"}, partition_key="k")
        assert event.size_in_bytes == 5 + 4 + 1

    def test_equality(self):
        assert EventData("a", sequence_number=1) == EventData("a", sequence_number=1)
        assert EventData("a") != EventData("b")


# =============================================================================
# EventPosition
# =============================================================================


class TestEventPosition:
    def test_earliest_and_latest(self):
        assert EventPosition.earliest().offset == "-1"
        assert EventPosition.latest().offset == "@latest"
        assert not EventPosition.earliest().is_inclusive

    def test_from_offset(self):
        position = EventPosition.from_offset(4096)
        assert position.offset == "4096"
        assert position.is_inclusive
        with pytest.raises(ValueError):
            EventPosition.from_offset(" ")

    def test_from_sequence_number(self):
        position = EventPosition.from_sequence_number(7, is_inclusive=False)
        assert position.sequence_number == 7
        assert not position.is_inclusive

    def test_from_enqueued_time(self):
        when = datetime(2024, 5, 1, tzinfo=UTC)
        assert EventPosition.from_enqueued_time(when).enqueued_time == when
        with pytest.raises(ValueError):
            EventPosition.from_enqueued_time(None)

    def test_str(self):
        assert str(EventPosition.from_sequence_number(3)) == "Sequence Number: [3] | Inclusive: [True]"


# =============================================================================
# PartitionContext / PartitionEvent
# =============================================================================


class _Consumer:
    def __init__(self, closed=False, properties=None):
        self.is_closed = closed
        self.last_received_event_properties = properties


class TestPartitionContext:
    def test_reads_from_consumer(self):
        properties = LastEnqueuedEventProperties(sequence_number=9)
        consumer = _Consumer(properties=properties)
        context = PartitionContext("0", transport_consumer=consumer)
        assert context.read_last_enqueued_event_properties() is properties

    def test_empty_properties_when_nothing_received(self):
        context = PartitionContext("0", transport_consumer=_Consumer())
        assert context.read_last_enqueued_event_properties() == LastEnqueuedEventProperties()

    def test_tracking_disabled(self):
        context = PartitionContext("0", transport_consumer=_Consumer(), tracking_enabled=False)
        with pytest.raises(ValueError, match="not enabled"):
            context.read_last_enqueued_event_properties()

    def test_closed_consumer(self):
        context = PartitionContext("0", event_hub_name="orders", transport_consumer=_Consumer(closed=True))
        with pytest.raises(EventHubsClientClosedError):
            context.read_last_enqueued_event_properties()

    def test_released_consumer(self):
        consumer = _Consumer()
        context = PartitionContext("0", transport_consumer=consumer)
        del consumer
        with pytest.raises(EventHubsClientClosedError):
            context.read_last_enqueued_event_properties()


def test_partition_event_is_empty():
    assert PartitionEvent(None).is_empty
    assert not PartitionEvent(PartitionContext("0"), EventData("x")).is_empty


# =============================================================================
# Options
# =============================================================================


class TestOptions:
    def test_connection_options_coerce_transport(self):
        assert EventHubConnectionOptions(transport_type="AMQP_WEBSOCKETS").transport_type == (
            TransportType.AMQP_WEBSOCKETS
        )

    def test_proxy_requires_websockets(self):
        with pytest.raises(ValueError, match="proxy"):
            EventHubConnectionOptions(proxy={"proxy_hostname": "proxy"})
        EventHubConnectionOptions(
            transport_type=TransportType.AMQP_WEBSOCKETS, proxy={"proxy_hostname": "proxy"}
        )

    def test_client_options_reject_none(self):
        options = EventHubProducerClientOptions()
        with pytest.raises(ValueError):
            options.connection_options = None
        with pytest.raises(ValueError):
            options.retry_options = None

    def test_consumer_options_clone_is_deep(self):
        options = EventHubConsumerClientOptions(
            retry_options=EventHubsRetryOptions(maximum_retries=7), owner_level=3
        )
        clone = options.clone()
        clone.retry_options.maximum_retries = 1
        assert options.retry_options.maximum_retries == 7
        assert clone.owner_level == 3

    def test_send_options_validate(self):
        SendOptions(partition_key="k").validate()
        with pytest.raises(ValueError, match="may not both be set"):
            SendOptions(partition_key="k", partition_id="0").validate()
        with pytest.raises(ValueError, match="blank"):
            SendOptions(partition_id=" ").validate()

    def test_create_batch_options_size(self):
        with pytest.raises(ValueError):
            CreateBatchOptions(maximum_size_in_bytes=0)

    @pytest.mark.parametrize(
        "kwargs",
        [{"maximum_wait_time": 0}, {"cache_event_count": 0}, {"prefetch_count": -1}],
    )
    def test_read_options_validate(self, kwargs):
        with pytest.raises(ValueError):
            ReadEventOptions(**kwargs)

    @pytest.mark.parametrize(
        ("name", "value"),
        [("maximum_wait_time", -1.0), ("cache_event_count", 0), ("prefetch_count", -5)],
    )
    def test_read_options_validate_on_assignment(self, name, value):
        options = ReadEventOptions()
        with pytest.raises(ValueError, match=name):
            setattr(options, name, value)

    def test_read_options_zero_prefetch_allowed(self):
        options = ReadEventOptions(prefetch_count=0)
        assert options.clone().prefetch_count == 0

    def test_create_batch_options_validate_on_assignment(self):
        options = CreateBatchOptions(partition_key="k")
        with pytest.raises(ValueError, match="maximum_size_in_bytes"):
            options.maximum_size_in_bytes = -1
        assert options == CreateBatchOptions(partition_key="k")


# =============================================================================
# EventDataBatch
# =============================================================================


class TestEventDataBatch:
    def test_try_add_within_limit(self):
        batch = EventDataBatch(BATCH_OVERHEAD_BYTES + 2 * (EVENT_OVERHEAD_BYTES + 5))
        assert batch.try_add(EventData("12345"))
        assert batch.try_add(EventData("abcde"))
        assert not batch.try_add(EventData("x"))
        assert batch.count == 2
        assert len(batch) == 2
        assert batch.size_in_bytes == batch.maximum_size_in_bytes

    def test_oversized_event_rejected(self):
        batch = EventDataBatch(64)
        assert not batch.try_add(EventData(b"x" * 100))
        assert batch.count == 0

    def test_sealed_batch_rejects_events(self):
        batch = EventDataBatch(1024)
        batch.try_add(EventData("a"))
        batch.seal()
        with pytest.raises(RuntimeError):
            batch.try_add(EventData("b"))

    def test_close_clears_and_seals(self):
        batch = EventDataBatch(1024)
        batch.try_add(EventData("a"))
        batch.close()
        assert batch.count == 0
        assert batch.size_in_bytes == BATCH_OVERHEAD_BYTES
        assert batch.is_sealed

    def test_events_copy(self):
        batch = EventDataBatch(1024)
        batch.try_add(EventData("a"))
        batch.events.clear()
        assert [e.body for e in batch] == [b"a"]

    def test_transport_measure_decides_fit(self):
        sizes = iter([30, None])
        batch = EventDataBatch(1024, measure=lambda event: next(sizes))

        assert batch.try_add(EventData("a"))
        assert batch.size_in_bytes == 30
        assert not batch.try_add(EventData("b"))
        assert batch.count == 1
        assert batch.size_in_bytes == 30

    def test_validation(self):
        with pytest.raises(ValueError):
            EventDataBatch(0)
        with pytest.raises(ValueError):
            EventDataBatch(1024).try_add(None)
