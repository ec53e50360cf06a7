"""
Transport abstraction for Event Hubs.

The clients speak to the service only through these interfaces. Every
service operation receives the caller's retry policy; transports retry
according to it and never on their own.
"""

from abc import ABC, abstractmethod

from clients.eventhubs.batch import EventDataBatch
from clients.eventhubs.models import (
    EventData,
    EventHubProperties,
    EventPosition,
    LastEnqueuedEventProperties,
    PartitionProperties,
)
from clients.eventhubs.options import CreateBatchOptions, SendOptions
from clients.eventhubs.retry import EventHubsRetryPolicy


class TransportProducer(ABC):
    """Publishes events to an event hub, optionally bound to one partition."""

    @abstractmethod
    async def send(self, events: list[EventData], send_options: SendOptions) -> None:
        ...

    @abstractmethod
    async def send_batch(self, batch: EventDataBatch) -> None:
        ...

    @abstractmethod
    async def create_batch(self, options: CreateBatchOptions) -> EventDataBatch:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...


class TransportConsumer(ABC):
    """Reads events from a single partition for one consumer group."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        ...

    @property
    @abstractmethod
    def last_received_event_properties(self) -> LastEnqueuedEventProperties | None:
        """Last enqueued event information from the most recent delivery, if tracked."""

    @abstractmethod
    async def receive(self, maximum_count: int, maximum_wait_time: float | None) -> list[EventData]:
        """
        Receive up to ``maximum_count`` events.

        Returns an empty list when ``maximum_wait_time`` (or, when None, the
        retry policy's try timeout) elapses without an event. A receive is a
        single attempt; callers apply the retry policy to failures.
        """

    @abstractmethod
    async def close(self) -> None:
        ...


class TransportClient(ABC):
    """A connection to one event hub, producing transport producers and consumers."""

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        ...

    @abstractmethod
    async def get_properties(self, retry_policy: EventHubsRetryPolicy) -> EventHubProperties:
        ...

    @abstractmethod
    async def get_partition_properties(
        self, partition_id: str, retry_policy: EventHubsRetryPolicy
    ) -> PartitionProperties:
        ...

    @abstractmethod
    def create_producer(
        self, partition_id: str | None, retry_policy: EventHubsRetryPolicy
    ) -> TransportProducer:
        ...

    @abstractmethod
    def create_consumer(
        self,
        consumer_group: str,
        partition_id: str,
        event_position: EventPosition,
        retry_policy: EventHubsRetryPolicy,
        track_last_enqueued_event_properties: bool = True,
        owner_level: int | None = None,
        prefetch_count: int | None = None,
    ) -> TransportConsumer:
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
