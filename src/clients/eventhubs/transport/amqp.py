"""
AMQP transport over ``azure-eventhub``.

The SDK owns the protocol: links, framing, authentication handshakes. Its
own retries are disabled (``retry_total=0``) so the retry policy handed in by
the clients governs every operation. Models are converted at this boundary
and SDK exceptions are translated into ``EventHubsError``.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from azure.core.credentials import AzureSasCredential
from azure.eventhub import EventData as SdkEventData
from azure.eventhub import TransportType as SdkTransportType
from azure.eventhub.aio import EventHubConsumerClient as SdkConsumerClient
from azure.eventhub.aio import EventHubProducerClient as SdkProducerClient

from clients.eventhubs.authorization import SharedAccessSignatureCredential
from clients.eventhubs.batch import EventDataBatch
from clients.eventhubs.errors import EventHubsClientClosedError, translate_error
from clients.eventhubs.models import (
    EventData,
    EventHubProperties,
    EventPosition,
    LastEnqueuedEventProperties,
    PartitionProperties,
)
from clients.eventhubs.options import (
    DEFAULT_PREFETCH_COUNT,
    CreateBatchOptions,
    EventHubConnectionOptions,
    SendOptions,
    TransportType,
)
from clients.eventhubs.retry import EventHubsRetryPolicy, run_with_retry
from clients.eventhubs.transport.base import TransportClient, TransportConsumer, TransportProducer

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SDK_TRANSPORT = {
    TransportType.AMQP_TCP: SdkTransportType.Amqp,
    TransportType.AMQP_WEBSOCKETS: SdkTransportType.AmqpOverWebsocket,
}


# =============================================================================
# Model conversion
# =============================================================================


def _decode(value: Any) -> Any:
    return value.decode("utf-8", errors="replace") if isinstance(value, bytes) else value


def to_sdk_event(event: EventData) -> SdkEventData:
    sdk_event = SdkEventData(event.body)
    if event.properties:
        sdk_event.properties = dict(event.properties)
    return sdk_event


def sdk_batch_measure(sdk_batch) -> Callable[[EventData], int | None]:
    """Size events by adding them to the SDK's batch, which knows the exact AMQP encoding."""

    def measure(event: EventData) -> int | None:
        try:
            sdk_batch.add(to_sdk_event(event))
        except ValueError:
            return None
        return sdk_batch.size_in_bytes

    return measure


def from_sdk_event(sdk_event: SdkEventData) -> EventData:
    body = sdk_event.body if isinstance(sdk_event.body, bytes) else b"".join(sdk_event.body)
    properties = {_decode(k): _decode(v) for k, v in (sdk_event.properties or {}).items()}
    system_properties = {_decode(k): _decode(v) for k, v in (sdk_event.system_properties or {}).items()}
    return EventData(
        body,
        properties,
        sequence_number=sdk_event.sequence_number,
        offset=str(sdk_event.offset) if sdk_event.offset is not None else None,
        enqueued_time=sdk_event.enqueued_time,
        partition_key=_decode(sdk_event.partition_key),
        system_properties=system_properties,
    )


def to_starting_position(position: EventPosition) -> tuple[str | int | datetime, bool]:
    """The SDK ``starting_position`` and ``starting_position_inclusive`` for a position."""
    if position.offset is not None:
        return position.offset, position.is_inclusive
    if position.sequence_number is not None:
        return position.sequence_number, position.is_inclusive
    return position.enqueued_time, position.is_inclusive


def _last_enqueued_from_sdk(properties: dict | None) -> LastEnqueuedEventProperties | None:
    if not properties:
        return None
    offset = properties.get("offset")
    return LastEnqueuedEventProperties(
        sequence_number=properties.get("sequence_number"),
        offset=str(offset) if offset is not None else None,
        enqueued_time=properties.get("enqueued_time"),
        retrieved_time=properties.get("retrieved_time"),
    )


# =============================================================================
# Client
# =============================================================================


class AmqpTransportClient(TransportClient):
    """Transport client for one event hub backed by ``azure.eventhub.aio``."""

    def __init__(
        self,
        fully_qualified_namespace: str,
        event_hub_name: str,
        credential: Any,
        connection_options: EventHubConnectionOptions | None = None,
    ):
        self.fully_qualified_namespace = fully_qualified_namespace
        self.event_hub_name = event_hub_name
        self.connection_options = connection_options or EventHubConnectionOptions()
        self._credential = credential
        self._sas_credential: AzureSasCredential | None = None
        self._management: SdkProducerClient | None = None
        self._closed = False

        if isinstance(credential, SharedAccessSignatureCredential):
            self._sas_credential = AzureSasCredential(credential.get_token().token)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _refresh_signature(self) -> None:
        # Extends the signature when it nears expiry; the SDK reads the
        # updated value on its next token request
        if self._sas_credential is not None:
            self._sas_credential.update(self._credential.get_token().token)

    def client_kwargs(self) -> dict[str, Any]:
        self._refresh_signature()
        kwargs: dict[str, Any] = {
            "fully_qualified_namespace": self.fully_qualified_namespace,
            "eventhub_name": self.event_hub_name,
            "credential": self._sas_credential or self._credential,
            "retry_total": 0,
            "transport_type": _SDK_TRANSPORT[self.connection_options.transport_type],
        }
        if self.connection_options.proxy:
            kwargs["http_proxy"] = self.connection_options.proxy
        return kwargs

    def _assert_open(self) -> None:
        if self._closed:
            raise EventHubsClientClosedError(
                "The transport client has been closed.", self.event_hub_name
            )

    async def invoke(
        self,
        operation: Callable[[float], Awaitable[T]],
        retry_policy: EventHubsRetryPolicy,
        name: str,
    ) -> T:
        """Run an SDK operation under the retry policy, translating SDK errors per attempt."""

        async def attempt(try_timeout: float) -> T:
            self._assert_open()
            self._refresh_signature()
            try:
                return await operation(try_timeout)
            except Exception as e:
                translated = translate_error(e, self.event_hub_name)
                if translated is e:
                    raise
                raise translated from e

        return await run_with_retry(attempt, retry_policy, name, self.event_hub_name)

    def _management_client(self) -> SdkProducerClient:
        if self._management is None:
            self._management = SdkProducerClient(**self.client_kwargs())
        return self._management

    async def get_properties(self, retry_policy: EventHubsRetryPolicy) -> EventHubProperties:
        async def operation(try_timeout: float) -> EventHubProperties:
            props = await self._management_client().get_eventhub_properties()
            return EventHubProperties(
                name=props.get("eventhub_name", self.event_hub_name),
                created_on=props.get("created_at"),
                partition_ids=tuple(props.get("partition_ids", ())),
            )

        return await self.invoke(operation, retry_policy, "get_properties")

    async def get_partition_properties(
        self, partition_id: str, retry_policy: EventHubsRetryPolicy
    ) -> PartitionProperties:
        async def operation(try_timeout: float) -> PartitionProperties:
            props = await self._management_client().get_partition_properties(partition_id)
            return PartitionProperties(
                event_hub_name=props.get("eventhub_name", self.event_hub_name),
                id=str(props.get("id", partition_id)),
                beginning_sequence_number=props.get("beginning_sequence_number", 0),
                last_enqueued_sequence_number=props.get("last_enqueued_sequence_number", 0),
                last_enqueued_offset=str(props.get("last_enqueued_offset", "")),
                last_enqueued_time=props.get("last_enqueued_time_utc"),
                is_empty=bool(props.get("is_empty", False)),
            )

        return await self.invoke(operation, retry_policy, "get_partition_properties")

    def create_producer(
        self, partition_id: str | None, retry_policy: EventHubsRetryPolicy
    ) -> "AmqpTransportProducer":
        self._assert_open()
        return AmqpTransportProducer(self, partition_id, retry_policy)

    def create_consumer(
        self,
        consumer_group: str,
        partition_id: str,
        event_position: EventPosition,
        retry_policy: EventHubsRetryPolicy,
        track_last_enqueued_event_properties: bool = True,
        owner_level: int | None = None,
        prefetch_count: int | None = None,
    ) -> "AmqpTransportConsumer":
        self._assert_open()
        return AmqpTransportConsumer(
            self,
            consumer_group,
            partition_id,
            event_position,
            retry_policy,
            track_last_enqueued_event_properties=track_last_enqueued_event_properties,
            owner_level=owner_level,
            prefetch_count=prefetch_count,
        )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._management is not None:
            management, self._management = self._management, None
            await management.close()
        logger.debug("AMQP transport client closed", extra={"eventhub": self.event_hub_name})


# =============================================================================
# Producer
# =============================================================================


class AmqpTransportProducer(TransportProducer):
    """Publishes through an SDK producer client created on first use."""

    def __init__(
        self,
        client: AmqpTransportClient,
        partition_id: str | None,
        retry_policy: EventHubsRetryPolicy,
    ):
        self._client = client
        self.partition_id = partition_id
        self.retry_policy = retry_policy
        self._producer: SdkProducerClient | None = None
        self._closed = False

    def _sdk_producer(self) -> SdkProducerClient:
        if self._closed:
            raise EventHubsClientClosedError(
                "The transport producer has been closed.", self._client.event_hub_name
            )
        if self._producer is None:
            self._producer = SdkProducerClient(**self._client.client_kwargs())
        return self._producer

    def _routing(self, send_options: SendOptions) -> dict[str, Any]:
        routing: dict[str, Any] = {}
        partition_id = self.partition_id or send_options.partition_id
        if partition_id is not None:
            routing["partition_id"] = partition_id
        elif send_options.partition_key is not None:
            routing["partition_key"] = send_options.partition_key
        return routing

    async def send(self, events: list[EventData], send_options: SendOptions) -> None:
        sdk_events = [to_sdk_event(event) for event in events]
        routing = self._routing(send_options)

        async def operation(try_timeout: float) -> None:
            await self._sdk_producer().send_batch(sdk_events, timeout=try_timeout, **routing)

        await self._client.invoke(operation, self.retry_policy, "send")

    async def send_batch(self, batch: EventDataBatch) -> None:
        await self.send(batch.events, batch.send_options)

    async def create_batch(self, options: CreateBatchOptions) -> EventDataBatch:
        routing = self._routing(options)

        async def operation(try_timeout: float) -> EventDataBatch:
            sdk_batch = await self._sdk_producer().create_batch(
                max_size_in_bytes=options.maximum_size_in_bytes, **routing
            )
            return EventDataBatch(
                sdk_batch.max_size_in_bytes,
                send_options=options,
                resource_name=self._client.event_hub_name,
                measure=sdk_batch_measure(sdk_batch),
            )

        return await self._client.invoke(operation, self.retry_policy, "create_batch")

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._producer is not None:
            producer, self._producer = self._producer, None
            await producer.close()


# =============================================================================
# Consumer
# =============================================================================


class AmqpTransportConsumer(TransportConsumer):
    """
    Pull-style reads over the SDK's callback-style ``receive_batch``.

    A background task runs ``receive_batch`` for the partition and feeds a
    bounded queue; ``receive`` drains it. Each ``receive`` is a single
    attempt: after a failure the SDK client is recreated on the next call and
    reading resumes after the last event handed out.
    """

    def __init__(
        self,
        client: AmqpTransportClient,
        consumer_group: str,
        partition_id: str,
        event_position: EventPosition,
        retry_policy: EventHubsRetryPolicy,
        track_last_enqueued_event_properties: bool = True,
        owner_level: int | None = None,
        prefetch_count: int | None = None,
    ):
        self._client = client
        self.consumer_group = consumer_group
        self.partition_id = partition_id
        self.retry_policy = retry_policy
        self.track_last_enqueued_event_properties = track_last_enqueued_event_properties
        self.owner_level = owner_level
        self.prefetch_count = DEFAULT_PREFETCH_COUNT if prefetch_count is None else prefetch_count
        self._position = event_position
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=DEFAULT_PREFETCH_COUNT)
        self._sdk_consumer: SdkConsumerClient | None = None
        self._receive_task: asyncio.Task | None = None
        self._pending_error: BaseException | None = None
        self._last_enqueued: LastEnqueuedEventProperties | None = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def last_received_event_properties(self) -> LastEnqueuedEventProperties | None:
        return self._last_enqueued

    async def _on_event_batch(self, partition_context, events) -> None:
        if self.track_last_enqueued_event_properties:
            self._last_enqueued = _last_enqueued_from_sdk(
                partition_context.last_enqueued_event_properties
            ) or self._last_enqueued
        for sdk_event in events or ():
            await self._queue.put(from_sdk_event(sdk_event))

    async def _on_error(self, partition_context, error) -> None:
        await self._queue.put(error)

    async def _ensure_receiving(self) -> None:
        task = self._receive_task
        if task is not None and not task.done():
            return

        if task is not None:
            # receive_batch returned or crashed: release its client first
            consumer, self._sdk_consumer = self._sdk_consumer, None
            self._receive_task = None
            if consumer is not None:
                await consumer.close()
            error = None if task.cancelled() else task.exception()
            if error is not None:
                raise error

        kwargs = self._client.client_kwargs()
        kwargs["consumer_group"] = self.consumer_group
        self._sdk_consumer = SdkConsumerClient(**kwargs)

        starting_position, inclusive = to_starting_position(self._position)
        receive_kwargs: dict[str, Any] = {
            "on_event_batch": self._on_event_batch,
            "on_error": self._on_error,
            "partition_id": self.partition_id,
            "starting_position": starting_position,
            "starting_position_inclusive": inclusive,
            "track_last_enqueued_event_properties": self.track_last_enqueued_event_properties,
            "prefetch": self.prefetch_count,
            "max_batch_size": max(1, self.prefetch_count),
        }
        if self.owner_level is not None:
            receive_kwargs["owner_level"] = self.owner_level

        self._receive_task = asyncio.create_task(
            self._sdk_consumer.receive_batch(**receive_kwargs),
            name=f"eventhub-receive-{self._client.event_hub_name}-{self.partition_id}",
        )

    async def _stop_receiving(self) -> None:
        consumer, self._sdk_consumer = self._sdk_consumer, None
        task, self._receive_task = self._receive_task, None
        if consumer is not None:
            await consumer.close()
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
        while not self._queue.empty():
            self._queue.get_nowait()

    async def _receive_once(self, maximum_count: int, wait_time: float) -> list[EventData]:
        if self._pending_error is not None:
            error, self._pending_error = self._pending_error, None
            raise error

        if self._queue.empty():
            await self._ensure_receiving()

        getter = asyncio.ensure_future(self._queue.get())
        waiting = {getter}
        if self._receive_task is not None:
            waiting.add(self._receive_task)
        try:
            await asyncio.wait(waiting, timeout=wait_time, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not getter.done():
                getter.cancel()
                await asyncio.gather(getter, return_exceptions=True)

        if getter.cancelled():
            task = self._receive_task
            if task is not None and task.done() and self._queue.empty():
                # Raises when receive_batch crashed, otherwise starts a new one
                await self._ensure_receiving()
            return []

        first = getter.result()

        if isinstance(first, BaseException):
            raise first

        events = [first]
        while len(events) < maximum_count and not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, BaseException):
                self._pending_error = item
                break
            events.append(item)

        last = events[-1]
        if last.offset is not None:
            self._position = EventPosition.from_offset(last.offset, is_inclusive=False)
        return events

    async def receive(self, maximum_count: int, maximum_wait_time: float | None) -> list[EventData]:
        if self._closed:
            raise EventHubsClientClosedError(
                "The transport consumer has been closed.", self._client.event_hub_name
            )

        wait_time = (
            maximum_wait_time
            if maximum_wait_time is not None
            else self.retry_policy.calculate_try_timeout(1)
        )
        try:
            return await self._receive_once(maximum_count, wait_time)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Reading resumes after the last event handed out on the next call
            await self._stop_receiving()
            translated = translate_error(e, self._client.event_hub_name)
            if translated is e:
                raise
            raise translated from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._stop_receiving()
        # Wake a pending receive
        self._queue.put_nowait(
            EventHubsClientClosedError(
                "The transport consumer has been closed.", self._client.event_hub_name
            )
        )
