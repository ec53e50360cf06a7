"""
In-memory transport for Event Hubs client tests.

``FakeTransportClient`` hands out producers that record what they send and
consumers that replay a per-partition script: each script entry is either a
list of events to return from one ``receive`` or an exception to raise.
Once a script is exhausted a receive waits for ``maximum_wait_time`` (or
forever) like an idle partition.
"""

import asyncio
from datetime import UTC, datetime

from clients.eventhubs.batch import EventDataBatch
from clients.eventhubs.models import (
    EventData,
    EventHubProperties,
    LastEnqueuedEventProperties,
    PartitionProperties,
)
from clients.eventhubs.transport.base import TransportClient, TransportConsumer, TransportProducer

NAMESPACE = "test-ns.servicebus.windows.net"
EVENT_HUB = "orders"
CONNECTION_STRING = (
    f"Endpoint=sb://{NAMESPACE}/;SharedAccessKeyName=RootManageSharedAccessKey;"
    f"SharedAccessKey=c2VjcmV0a2V5;EntityPath={EVENT_HUB}"
)


class FakeTransportProducer(TransportProducer):
    def __init__(self, partition_id, retry_policy, maximum_size_in_bytes=1024):
        self.partition_id = partition_id
        self.retry_policy = retry_policy
        self.maximum_size_in_bytes = maximum_size_in_bytes
        self.sent: list[tuple[list[EventData], object]] = []
        self.send_error: Exception | None = None
        self.close_error: Exception | None = None
        self.closed = False

    async def send(self, events, send_options):
        if self.send_error is not None:
            raise self.send_error
        self.sent.append((list(events), send_options))

    async def send_batch(self, batch):
        await self.send(batch.events, batch.send_options)

    async def create_batch(self, options):
        return EventDataBatch(
            options.maximum_size_in_bytes or self.maximum_size_in_bytes,
            send_options=options,
            resource_name=EVENT_HUB,
        )

    async def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


class FakeTransportConsumer(TransportConsumer):
    def __init__(self, partition_id, script, **settings):
        self.partition_id = partition_id
        self.script = list(script)
        self.settings = settings
        self.receive_calls = 0
        self.last_enqueued: LastEnqueuedEventProperties | None = None
        self.closed = False

    @property
    def is_closed(self):
        return self.closed

    @property
    def last_received_event_properties(self):
        return self.last_enqueued

    async def receive(self, maximum_count, maximum_wait_time):
        self.receive_calls += 1
        if self.script:
            item = self.script.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item[:maximum_count]
        if maximum_wait_time is not None:
            await asyncio.sleep(maximum_wait_time)
            return []
        await asyncio.Event().wait()
        return []

    async def close(self):
        self.closed = True


class FakeTransportClient(TransportClient):
    def __init__(self, partition_ids=("0", "1"), scripts=None):
        self.partition_ids = tuple(partition_ids)
        self.scripts = {pid: list(items) for pid, items in (scripts or {}).items()}
        self.producers: list[FakeTransportProducer] = []
        self.consumers: list[FakeTransportConsumer] = []
        self.retry_policies: list = []
        self.closed = False

    @property
    def is_closed(self):
        return self.closed

    async def get_properties(self, retry_policy):
        self.retry_policies.append(retry_policy)
        return EventHubProperties(
            name=EVENT_HUB,
            created_on=datetime(2024, 1, 1, tzinfo=UTC),
            partition_ids=self.partition_ids,
        )

    async def get_partition_properties(self, partition_id, retry_policy):
        self.retry_policies.append(retry_policy)
        return PartitionProperties(
            event_hub_name=EVENT_HUB,
            id=partition_id,
            beginning_sequence_number=0,
            last_enqueued_sequence_number=41,
            last_enqueued_offset="4096",
            last_enqueued_time=datetime(2024, 1, 2, tzinfo=UTC),
            is_empty=False,
        )

    def create_producer(self, partition_id, retry_policy):
        producer = FakeTransportProducer(partition_id, retry_policy)
        self.producers.append(producer)
        return producer

    def create_consumer(
        self,
        consumer_group,
        partition_id,
        event_position,
        retry_policy,
        track_last_enqueued_event_properties=True,
        owner_level=None,
        prefetch_count=None,
    ):
        consumer = FakeTransportConsumer(
            partition_id,
            self.scripts.get(partition_id, ()),
            consumer_group=consumer_group,
            event_position=event_position,
            retry_policy=retry_policy,
            track_last_enqueued_event_properties=track_last_enqueued_event_properties,
            owner_level=owner_level,
            prefetch_count=prefetch_count,
        )
        self.consumers.append(consumer)
        return consumer

    async def close(self):
        self.closed = True


def make_events(*bodies: str, start_sequence: int = 0) -> list[EventData]:
    return [
        EventData(body, sequence_number=start_sequence + i, offset=str((start_sequence + i) * 100))
        for i, body in enumerate(bodies)
    ]

