"""
Event Hubs producer client.

Publishes events to an event hub, either as a list in one call or as a
size-checked ``EventDataBatch``. Every service operation runs under the
client's retry policy, which is handed to the connection and transport.
"""

import logging
import time
from collections.abc import Iterable
from typing import Any

from clients.eventhubs.batch import EventDataBatch
from clients.decorators import set_log_context_for_operation
from clients.eventhubs.connection import EventHubConnection
from clients.eventhubs.errors import EventHubsClientClosedError
from clients.eventhubs.models import EventData, EventHubProperties, PartitionProperties
from clients.eventhubs.options import CreateBatchOptions, EventHubProducerClientOptions, SendOptions
from clients.eventhubs.retry import EventHubsRetryPolicy, build_retry_policy
from clients.eventhubs.transport.base import TransportClient, TransportProducer
from clients.metrics import record_events_sent, send_duration_seconds
from core.logging.utilities import log_exception

logger = logging.getLogger(__name__)

_log_context = set_log_context_for_operation(
    "EventHubProducerClient", "event_hub_name", resource_from_args=False
)


class EventHubProducerClient:
    """
    A client that publishes events to an event hub.

    Construct it with ``from_connection_string`` or ``from_namespace`` (the
    client owns and closes its connection), or pass an existing
    ``EventHubConnection`` to share it (the client leaves it open on close).
    """

    def __init__(
        self,
        connection: EventHubConnection,
        options: EventHubProducerClientOptions | None = None,
        *,
        owns_connection: bool = False,
    ):
        if connection is None:
            raise ValueError("connection must be provided.")

        self.options = (options or EventHubProducerClientOptions()).clone()
        self._connection = connection
        self._owns_connection = owns_connection
        self.retry_policy: EventHubsRetryPolicy = build_retry_policy(self.options.retry_options)
        self._producers: dict[str | None, TransportProducer] = {}
        self._closed = False

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        event_hub_name: str | None = None,
        options: EventHubProducerClientOptions | None = None,
        transport_client: TransportClient | None = None,
    ) -> "EventHubProducerClient":
        options = options or EventHubProducerClientOptions()
        connection = EventHubConnection.from_connection_string(
            connection_string,
            event_hub_name,
            connection_options=options.connection_options,
            transport_client=transport_client,
        )
        return cls(connection, options, owns_connection=True)

    @classmethod
    def from_namespace(
        cls,
        fully_qualified_namespace: str,
        event_hub_name: str,
        credential: Any,
        options: EventHubProducerClientOptions | None = None,
        transport_client: TransportClient | None = None,
    ) -> "EventHubProducerClient":
        options = options or EventHubProducerClientOptions()
        connection = EventHubConnection(
            fully_qualified_namespace,
            event_hub_name,
            credential,
            connection_options=options.connection_options,
            transport_client=transport_client,
        )
        return cls(connection, options, owns_connection=True)

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
                "The producer client has been closed and can no longer be used.",
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
    # Publishing
    # =========================================================================

    def _get_producer(self, partition_id: str | None) -> TransportProducer:
        producer = self._producers.get(partition_id)
        if producer is None:
            producer = self._connection.create_transport_producer(partition_id, self.retry_policy)
            self._producers[partition_id] = producer
        return producer

    @_log_context
    async def send(
        self,
        events: Iterable[EventData],
        send_options: SendOptions | None = None,
    ) -> None:
        """
        Send events in a single operation.

        Raises:
            ValueError: if no events are given, or both a partition key and a
                partition id are set
            EventHubsClientClosedError: if the client has been closed
        """
        self._assert_open()
        if events is None:
            raise ValueError("events must be provided.")
        events = list(events)
        if not events:
            raise ValueError("At least one event must be provided to send.")

        send_options = send_options or SendOptions()
        send_options.validate()

        producer = self._get_producer(send_options.partition_id)
        await self._publish(producer.send(events, send_options), len(events), send_options)

    @_log_context
    async def create_batch(self, options: CreateBatchOptions | None = None) -> EventDataBatch:
        """Create an empty batch sized to the service link's limit (or ``options.maximum_size_in_bytes``)."""
        self._assert_open()
        options = options or CreateBatchOptions()
        options.validate()
        producer = self._get_producer(options.partition_id)
        return await producer.create_batch(options)

    @_log_context
    async def send_batch(self, batch: EventDataBatch) -> None:
        """
        Send a batch; the batch is sealed afterwards.

        Raises:
            ValueError: if the batch is empty
            RuntimeError: if the batch was already sent or closed
        """
        self._assert_open()
        if batch is None:
            raise ValueError("batch must be provided.")
        if batch.is_sealed:
            raise RuntimeError("The batch has been sent or closed and can no longer be sent.")
        if batch.count == 0:
            raise ValueError("The batch contains no events.")

        batch.send_options.validate()
        producer = self._get_producer(batch.send_options.partition_id)
        await self._publish(producer.send_batch(batch), batch.count, batch.send_options)
        batch.seal()

    async def _publish(self, operation, event_count: int, send_options: SendOptions) -> None:
        log_extra = {
            "eventhub": self.event_hub_name,
            "event_count": event_count,
            "partition_id": send_options.partition_id,
            "partition_key": send_options.partition_key,
        }
        logger.debug("Sending events", extra=log_extra)

        start_time = time.perf_counter()
        try:
            await operation
        except Exception as e:
            record_events_sent(self.event_hub_name, event_count, success=False, error_type=type(e).__name__)
            log_exception(logger, e, "Failed to send events", include_traceback=False, **log_extra)
            raise
        finally:
            send_duration_seconds.labels(eventhub=self.event_hub_name).observe(
                time.perf_counter() - start_time
            )

        record_events_sent(self.event_hub_name, event_count)
        logger.debug("Events sent", extra=log_extra)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def close(self) -> None:
        """
        Close pooled transport producers and, when owned, the connection.

        The first exception raised while closing is re-raised after every
        resource has been given the chance to close.
        """
        if self._closed:
            return
        self._closed = True

        first_error: BaseException | None = None
        producers, self._producers = list(self._producers.values()), {}
        for producer in producers:
            try:
                await producer.close()
            except Exception as e:
                logger.warning(
                    "Error closing transport producer",
                    extra={"eventhub": self.event_hub_name, "error_type": type(e).__name__},
                )
                first_error = first_error or e

        if self._owns_connection:
            try:
                await self._connection.close()
            except Exception as e:
                first_error = first_error or e

        logger.info("Event Hub producer client closed", extra={"eventhub": self.event_hub_name})
        if first_error is not None:
            raise first_error

    async def __aenter__(self) -> "EventHubProducerClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
