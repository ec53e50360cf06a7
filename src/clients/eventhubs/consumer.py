"""
Event Hubs consumer client.

Reads events from one partition or from all partitions of an event hub.
Each read owns its transport consumers and one background publishing task
per partition. Tasks receive from the transport and publish into a bounded
channel that the read's async iterator drains, so a reader that stops
consuming applies back-pressure all the way to the transport.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from clients.decorators import set_log_context_for_operation
from clients.eventhubs.connection import EventHubConnection
from clients.eventhubs.errors import EventHubsClientClosedError
from clients.eventhubs.models import (
    EventHubProperties,
    EventPosition,
    PartitionContext,
    PartitionEvent,
    PartitionProperties,
)
from clients.eventhubs.options import EventHubConsumerClientOptions, ReadEventOptions
from clients.eventhubs.retry import EventHubsRetryPolicy, build_retry_policy
from clients.eventhubs.transport.base import TransportClient, TransportConsumer
from clients.metrics import record_events_received, record_receive_error

logger = logging.getLogger(__name__)

_log_context = set_log_context_for_operation(
    "EventHubConsumerClient", "event_hub_name", resource_from_args=False
)

DEFAULT_CONSUMER_GROUP_NAME = "$Default"


@dataclass(frozen=True)
class _PartitionFailure:
    """Published into the channel when a partition stops with an error."""

    partition_id: str
    error: BaseException


class EventHubConsumerClient:
    """
    A client that reads events from an event hub in the context of a consumer group.

    Construct it with ``from_connection_string`` or ``from_namespace`` (the
    client owns and closes its connection), or pass an existing
    ``EventHubConnection`` to share it (the client leaves it open on close).
    """

    def __init__(
        self,
        consumer_group: str,
        connection: EventHubConnection,
        options: EventHubConsumerClientOptions | None = None,
        *,
        owns_connection: bool = False,
    ):
        if consumer_group is None or not consumer_group.strip():
            raise ValueError("consumer_group must be provided and not blank.")
        if connection is None:
            raise ValueError("connection must be provided.")

        self.options = (options or EventHubConsumerClientOptions()).clone()
        self.consumer_group = consumer_group
        self.owner_level = self.options.owner_level
        self._connection = connection
        self._owns_connection = owns_connection
        self.retry_policy: EventHubsRetryPolicy = build_retry_policy(self.options.retry_options)
        self._active_consumers: set[TransportConsumer] = set()
        self._closed = False

    @classmethod
    def from_connection_string(
        cls,
        consumer_group: str,
        connection_string: str,
        event_hub_name: str | None = None,
        options: EventHubConsumerClientOptions | None = None,
        transport_client: TransportClient | None = None,
    ) -> "EventHubConsumerClient":
        if consumer_group is None or not consumer_group.strip():
            raise ValueError("consumer_group must be provided and not blank.")
        options = options or EventHubConsumerClientOptions()
        connection = EventHubConnection.from_connection_string(
            connection_string,
            event_hub_name,
            connection_options=options.connection_options,
            transport_client=transport_client,
        )
        return cls(consumer_group, connection, options, owns_connection=True)

    @classmethod
    def from_namespace(
        cls,
        consumer_group: str,
        fully_qualified_namespace: str,
        event_hub_name: str,
        credential: Any,
        options: EventHubConsumerClientOptions | None = None,
        transport_client: TransportClient | None = None,
    ) -> "EventHubConsumerClient":
        if consumer_group is None or not consumer_group.strip():
            raise ValueError("consumer_group must be provided and not blank.")
        options = options or EventHubConsumerClientOptions()
        connection = EventHubConnection(
            fully_qualified_namespace,
            event_hub_name,
            credential,
            connection_options=options.connection_options,
            transport_client=transport_client,
        )
        return cls(consumer_group, connection, options, owns_connection=True)

    @property
    def fully_qualified_namespace(self) -> str:
        return self._connection.fully_qualified_namespace

    @property
    def event_hub_name(self) -> str:
        return self._connection.event_hub_name

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _assert_open(self) -> None:
        if self._closed:
            raise EventHubsClientClosedError(
                "The consumer client has been closed and can no longer be used.",
                self.event_hub_name,
            )

    # =========================================================================
    # Metadata
    # =========================================================================

    @_log_context
    async def get_event_hub_properties(self) -> EventHubProperties:
        self._assert_open()
        return await self._connection.get_properties(self.retry_policy)

    @_log_context
    async def get_partition_ids(self) -> list[str]:
        self._assert_open()
        return await self._connection.get_partition_ids(self.retry_policy)

    @_log_context
    async def get_partition_properties(self, partition_id: str) -> PartitionProperties:
        self._assert_open()
        return await self._connection.get_partition_properties(partition_id, self.retry_policy)

    # =========================================================================
    # Reading
    # =========================================================================

    def read_events_from_partition(
        self,
        partition_id: str,
        start_position: EventPosition,
        read_options: ReadEventOptions | None = None,
    ) -> AsyncIterator[PartitionEvent]:
        """
        Read events from one partition, starting at ``start_position``.

        Iterate with ``async for``; close the iterator (``aclose()`` or
        ``contextlib.aclosing``) to stop reading and release the partition.

        Raises:
            ValueError: if the partition id is blank or no start position is given
            EventHubsClientClosedError: if the client has been closed
        """
        self._assert_open()
        if partition_id is None or not str(partition_id).strip():
            raise ValueError("partition_id must be provided and not blank.")
        if start_position is None:
            raise ValueError("start_position must be provided.")
        return self._read(
            [partition_id],
            start_position,
            (read_options or ReadEventOptions()).clone(),
        )

    def read_events(
        self,
        start_position: EventPosition | None = None,
        read_options: ReadEventOptions | None = None,
    ) -> AsyncIterator[PartitionEvent]:
        """
        Read events from every partition of the event hub, from the earliest
        event by default. Events of one partition keep their order; no order
        holds across partitions.
        """
        self._assert_open()
        return self._read(
            None,
            start_position or EventPosition.earliest(),
            (read_options or ReadEventOptions()).clone(),
        )

    @set_log_context_for_operation(
        "EventHubConsumerClient", "event_hub_name", operation="read_events", resource_from_args=False
    )
    async def _read(
        self,
        partition_ids: list[str] | None,
        start_position: EventPosition,
        options: ReadEventOptions,
    ) -> AsyncIterator[PartitionEvent]:
        self._assert_open()
        owner_level = options.owner_level if options.owner_level is not None else self.owner_level
        channel: asyncio.Queue = asyncio.Queue(maxsize=options.cache_event_count)
        consumers: list[TransportConsumer] = []
        tasks: list[asyncio.Task] = []

        try:
            if partition_ids is None:
                partition_ids = await self.get_partition_ids()

            contexts: list[PartitionContext] = []
            for partition_id in partition_ids:
                consumer = self._connection.create_transport_consumer(
                    self.consumer_group,
                    partition_id,
                    start_position,
                    self.retry_policy,
                    track_last_enqueued_event_properties=options.track_last_enqueued_event_properties,
                    owner_level=owner_level,
                    prefetch_count=options.prefetch_count,
                )
                consumers.append(consumer)
                self._active_consumers.add(consumer)

                context = PartitionContext(
                    partition_id,
                    fully_qualified_namespace=self.fully_qualified_namespace,
                    event_hub_name=self.event_hub_name,
                    consumer_group=self.consumer_group,
                    transport_consumer=consumer,
                    tracking_enabled=options.track_last_enqueued_event_properties,
                )
                contexts.append(context)
                tasks.append(
                    asyncio.create_task(
                        self._publish_partition(consumer, context, channel, options),
                        name=f"eventhub-read-{self.event_hub_name}-{partition_id}",
                    )
                )

            logger.info(
                "Started reading events",
                extra={
                    "eventhub": self.event_hub_name,
                    "consumer_group": self.consumer_group,
                    "partition_id": ",".join(partition_ids),
                    "owner_level": owner_level,
                },
            )

            empty_context = contexts[0] if len(contexts) == 1 else None
            while True:
                self._assert_open()
                try:
                    if options.maximum_wait_time is None:
                        item = await channel.get()
                    else:
                        item = await asyncio.wait_for(channel.get(), timeout=options.maximum_wait_time)
                except asyncio.TimeoutError:
                    yield PartitionEvent(empty_context, None)
                    continue

                if isinstance(item, _PartitionFailure):
                    raise item.error
                yield item
        finally:
            for task in tasks:
                task.cancel()
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            await self._close_consumers(consumers)
            logger.debug(
                "Stopped reading events",
                extra={"eventhub": self.event_hub_name, "consumer_group": self.consumer_group},
            )

    async def _publish_partition(
        self,
        consumer: TransportConsumer,
        context: PartitionContext,
        channel: asyncio.Queue,
        options: ReadEventOptions,
    ) -> None:
        """Receive from one partition into the channel until cancelled or a failure is not retried."""
        failed_attempts = 0
        while True:
            try:
                events = await consumer.receive(options.cache_event_count, None)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if task is not None and task.cancelling():
                    raise
                # Cancelled by the transport, not by the reader
                await channel.put(_PartitionFailure(context.partition_id, asyncio.CancelledError()))
                return
            except Exception as e:
                failed_attempts += 1
                delay = self.retry_policy.calculate_retry_delay(e, failed_attempts)
                if delay is None:
                    record_receive_error(self.event_hub_name, self.consumer_group, type(e).__name__)
                    logger.error(
                        "Partition read stopped by error",
                        extra={
                            "eventhub": self.event_hub_name,
                            "consumer_group": self.consumer_group,
                            "partition_id": context.partition_id,
                            "attempt": failed_attempts,
                            "error_type": type(e).__name__,
                            "error_message": str(e)[:200],
                        },
                    )
                    await channel.put(_PartitionFailure(context.partition_id, e))
                    return

                logger.warning(
                    "Retryable error reading partition, will retry",
                    extra={
                        "eventhub": self.event_hub_name,
                        "partition_id": context.partition_id,
                        "attempt": failed_attempts,
                        "delay_seconds": round(delay, 3),
                        "error_type": type(e).__name__,
                    },
                )
                await asyncio.sleep(delay)
                continue

            failed_attempts = 0
            if not events:
                await asyncio.sleep(0)
                continue

            record_events_received(self.event_hub_name, self.consumer_group, len(events))
            for event in events:
                await channel.put(PartitionEvent(context, event))

    async def _close_consumers(self, consumers: list[TransportConsumer]) -> None:
        for consumer in consumers:
            self._active_consumers.discard(consumer)
            try:
                await consumer.close()
            except Exception as e:
                logger.warning(
                    "Error closing transport consumer",
                    extra={"eventhub": self.event_hub_name, "error_type": type(e).__name__},
                )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """
        Close every active transport consumer and, when owned, the connection.

        The first exception raised while closing a transport consumer is
        re-raised once the connection has been handled.
        """
        if self._closed:
            return
        self._closed = True

        first_error: BaseException | None = None
        consumers, self._active_consumers = list(self._active_consumers), set()
        for consumer in consumers:
            try:
                await consumer.close()
            except Exception as e:
                logger.warning(
                    "Error closing transport consumer",
                    extra={"eventhub": self.event_hub_name, "error_type": type(e).__name__},
                )
                first_error = first_error or e

        try:
            if self._owns_connection:
                await self._connection.close()
        finally:
            logger.info(
                "Event Hub consumer client closed",
                extra={"eventhub": self.event_hub_name, "consumer_group": self.consumer_group},
            )

        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> "EventHubConsumerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
