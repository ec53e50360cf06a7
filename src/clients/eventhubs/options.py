"""Options for Event Hubs connections, clients, sends and reads."""

from dataclasses import dataclass
from enum import Enum

from clients.eventhubs.retry import EventHubsRetryOptions

DEFAULT_CACHE_EVENT_COUNT = 100
DEFAULT_PREFETCH_COUNT = 300


class TransportType(Enum):
    """The protocol transport used to reach the service."""

    AMQP_TCP = "amqp_tcp"
    AMQP_WEBSOCKETS = "amqp_websockets"


@dataclass
class EventHubConnectionOptions:
    """
    Options for the connection to the Event Hubs namespace.

    A proxy is only honoured over web sockets, so setting one requires
    ``TransportType.AMQP_WEBSOCKETS``.
    """

    transport_type: TransportType = TransportType.AMQP_TCP
    proxy: dict | None = None

    def __post_init__(self):
        if not isinstance(self.transport_type, TransportType):
            self.transport_type = TransportType(str(self.transport_type).lower())
        if self.proxy is not None and self.transport_type != TransportType.AMQP_WEBSOCKETS:
            raise ValueError("A proxy may only be used with the AMQP_WEBSOCKETS transport.")

    def clone(self) -> "EventHubConnectionOptions":
        return EventHubConnectionOptions(
            transport_type=self.transport_type,
            proxy=dict(self.proxy) if self.proxy is not None else None,
        )


class _ClientOptions:
    """Connection and retry options shared by producer and consumer clients."""

    def __init__(
        self,
        connection_options: EventHubConnectionOptions | None = None,
        retry_options: EventHubsRetryOptions | None = None,
    ):
        self.connection_options = connection_options or EventHubConnectionOptions()
        self.retry_options = retry_options or EventHubsRetryOptions()

    @property
    def connection_options(self) -> EventHubConnectionOptions:
        return self._connection_options

    @connection_options.setter
    def connection_options(self, value: EventHubConnectionOptions) -> None:
        if value is None:
            raise ValueError("connection_options must not be None.")
        self._connection_options = value

    @property
    def retry_options(self) -> EventHubsRetryOptions:
        return self._retry_options

    @retry_options.setter
    def retry_options(self, value: EventHubsRetryOptions) -> None:
        if value is None:
            raise ValueError("retry_options must not be None.")
        self._retry_options = value


class EventHubProducerClientOptions(_ClientOptions):
    """Options for ``EventHubProducerClient``."""

    def clone(self) -> "EventHubProducerClientOptions":
        return EventHubProducerClientOptions(
            connection_options=self.connection_options.clone(),
            retry_options=self.retry_options.clone(),
        )


class EventHubConsumerClientOptions(_ClientOptions):
    """
    Options for ``EventHubConsumerClient``.

    ``owner_level`` makes the client an exclusive reader: the service
    disconnects readers of the same partition and consumer group with a lower
    owner level.
    """

    def __init__(
        self,
        connection_options: EventHubConnectionOptions | None = None,
        retry_options: EventHubsRetryOptions | None = None,
        owner_level: int | None = None,
    ):
        super().__init__(connection_options, retry_options)
        self.owner_level = owner_level

    def clone(self) -> "EventHubConsumerClientOptions":
        return EventHubConsumerClientOptions(
            connection_options=self.connection_options.clone(),
            retry_options=self.retry_options.clone(),
            owner_level=self.owner_level,
        )


@dataclass
class SendOptions:
    """
    Routing for a send: a partition key (hashed by the service) or an
    explicit partition id. At most one of the two may be set.
    """

    partition_key: str | None = None
    partition_id: str | None = None

    def validate(self) -> None:
        if self.partition_key is not None and self.partition_id is not None:
            raise ValueError(
                "A partition key and a partition id may not both be set: "
                f"partition_key={self.partition_key!r}, partition_id={self.partition_id!r}."
            )
        if self.partition_id is not None and not str(self.partition_id).strip():
            raise ValueError("The partition id must not be blank.")


class CreateBatchOptions(SendOptions):
    """``SendOptions`` for a batch plus an optional size limit in bytes."""

    def __init__(
        self,
        partition_key: str | None = None,
        partition_id: str | None = None,
        maximum_size_in_bytes: int | None = None,
    ):
        super().__init__(partition_key=partition_key, partition_id=partition_id)
        self.maximum_size_in_bytes = maximum_size_in_bytes

    @property
    def maximum_size_in_bytes(self) -> int | None:
        return self._maximum_size_in_bytes

    @maximum_size_in_bytes.setter
    def maximum_size_in_bytes(self, value: int | None) -> None:
        if value is not None and value <= 0:
            raise ValueError(f"maximum_size_in_bytes must be positive, got {value}.")
        self._maximum_size_in_bytes = value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CreateBatchOptions):
            return NotImplemented
        return (
            self.partition_key == other.partition_key
            and self.partition_id == other.partition_id
            and self.maximum_size_in_bytes == other.maximum_size_in_bytes
        )

    def __repr__(self) -> str:
        return (
            f"CreateBatchOptions(partition_key={self.partition_key!r}, "
            f"partition_id={self.partition_id!r}, maximum_size_in_bytes={self.maximum_size_in_bytes!r})"
        )


class ReadEventOptions:
    """
    Options for reading events. Every value is validated when it is set.

    Attributes:
        maximum_wait_time: Seconds to wait for an event before emitting an
            empty ``PartitionEvent``; None waits indefinitely
        cache_event_count: Events buffered per read before back-pressure applies
        prefetch_count: Events the transport requests from the service ahead of reads
        track_last_enqueued_event_properties: Request the partition's last enqueued
            event information with each delivery
        owner_level: Exclusive reader level; overrides the client's owner level
    """

    def __init__(
        self,
        maximum_wait_time: float | None = None,
        cache_event_count: int = DEFAULT_CACHE_EVENT_COUNT,
        prefetch_count: int = DEFAULT_PREFETCH_COUNT,
        track_last_enqueued_event_properties: bool = True,
        owner_level: int | None = None,
    ):
        self.maximum_wait_time = maximum_wait_time
        self.cache_event_count = cache_event_count
        self.prefetch_count = prefetch_count
        self.track_last_enqueued_event_properties = track_last_enqueued_event_properties
        self.owner_level = owner_level

    @property
    def maximum_wait_time(self) -> float | None:
        return self._maximum_wait_time

    @maximum_wait_time.setter
    def maximum_wait_time(self, value: float | None) -> None:
        if value is not None and value <= 0:
            raise ValueError(f"maximum_wait_time must be positive, got {value}.")
        self._maximum_wait_time = value

    @property
    def cache_event_count(self) -> int:
        return self._cache_event_count

    @cache_event_count.setter
    def cache_event_count(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"cache_event_count must be at least 1, got {value}.")
        self._cache_event_count = value

    @property
    def prefetch_count(self) -> int:
        return self._prefetch_count

    @prefetch_count.setter
    def prefetch_count(self, value: int) -> None:
        if value < 0:
            raise ValueError(f"prefetch_count must not be negative, got {value}.")
        self._prefetch_count = value

    def __repr__(self) -> str:
        return (
            f"ReadEventOptions(maximum_wait_time={self.maximum_wait_time}, "
            f"cache_event_count={self.cache_event_count}, prefetch_count={self.prefetch_count}, "
            f"track_last_enqueued_event_properties={self.track_last_enqueued_event_properties}, "
            f"owner_level={self.owner_level})"
        )

    def clone(self) -> "ReadEventOptions":
        return ReadEventOptions(
            maximum_wait_time=self.maximum_wait_time,
            cache_event_count=self.cache_event_count,
            prefetch_count=self.prefetch_count,
            track_last_enqueued_event_properties=self.track_last_enqueued_event_properties,
            owner_level=self.owner_level,
        )
