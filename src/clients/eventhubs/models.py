"""Event Hubs data models: events, positions, properties and read results."""

import json
import weakref
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from clients.eventhubs.errors import EventHubsClientClosedError
from core.utils.json_serializers import json_serializer


class EventData:
    """
    An event: an opaque body plus application properties.

    Events read from the service also carry the broker-assigned
    ``sequence_number``, ``offset``, ``enqueued_time`` and ``partition_key``.
    """

    def __init__(
        self,
        body: bytes | str | None = None,
        properties: dict[str, Any] | None = None,
        *,
        sequence_number: int | None = None,
        offset: str | None = None,
        enqueued_time: datetime | None = None,
        partition_key: str | None = None,
        system_properties: dict[str, Any] | None = None,
    ):
        if body is None:
            body = b""
        self.body: bytes = body.encode("utf-8") if isinstance(body, str) else bytes(body)
        self.properties: dict[str, Any] = dict(properties or {})
        self.sequence_number = sequence_number
        self.offset = offset
        self.enqueued_time = enqueued_time
        self.partition_key = partition_key
        self.system_properties: dict[str, Any] = dict(system_properties or {})

    @classmethod
    def from_value(
        cls,
        value: "BaseModel | dict[str, Any] | list | str | bytes",
        properties: dict[str, Any] | None = None,
    ) -> "EventData":
        """Build an event from a pydantic model, JSON-able value, string or bytes."""
        if isinstance(value, (bytes, bytearray)):
            body = bytes(value)
        elif isinstance(value, str):
            body = value.encode("utf-8")
        elif isinstance(value, BaseModel):
            body = value.model_dump_json().encode("utf-8")
        else:
            body = json.dumps(value, default=json_serializer).encode("utf-8")
        return cls(body, properties)

    def body_as_str(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def body_as_json(self) -> Any:
        return json.loads(self.body_as_str())

    @property
    def size_in_bytes(self) -> int:
        """Approximate encoded size: body plus application properties."""
        size = len(self.body)
        for key, value in self.properties.items():
            size += len(str(key).encode("utf-8")) + len(str(value).encode("utf-8"))
        if self.partition_key:
            size += len(self.partition_key.encode("utf-8"))
        return size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventData):
            return NotImplemented
        return (
            self.body == other.body
            and self.properties == other.properties
            and self.sequence_number == other.sequence_number
            and self.offset == other.offset
        )

    def __repr__(self) -> str:
        return (
            f"EventData(body_size={len(self.body)}, properties={list(self.properties)}, "
            f"sequence_number={self.sequence_number}, offset={self.offset!r})"
        )


@dataclass(frozen=True)
class EventPosition:
    """
    The position in a partition's stream at which reading starts.

    Exactly one of ``offset``, ``sequence_number`` or ``enqueued_time`` is set.
    """

    offset: str | None = None
    sequence_number: int | None = None
    enqueued_time: datetime | None = None
    is_inclusive: bool = False

    EARLIEST_OFFSET = "-1"
    LATEST_OFFSET = "@latest"

    @classmethod
    def earliest(cls) -> "EventPosition":
        return cls(offset=cls.EARLIEST_OFFSET, is_inclusive=False)

    @classmethod
    def latest(cls) -> "EventPosition":
        return cls(offset=cls.LATEST_OFFSET, is_inclusive=False)

    @classmethod
    def from_offset(cls, offset: int | str, is_inclusive: bool = True) -> "EventPosition":
        if offset is None or not str(offset).strip():
            raise ValueError("The offset must be provided.")
        return cls(offset=str(offset), is_inclusive=is_inclusive)

    @classmethod
    def from_sequence_number(cls, sequence_number: int, is_inclusive: bool = True) -> "EventPosition":
        return cls(sequence_number=int(sequence_number), is_inclusive=is_inclusive)

    @classmethod
    def from_enqueued_time(cls, enqueued_time: datetime) -> "EventPosition":
        if enqueued_time is None:
            raise ValueError("The enqueued time must be provided.")
        return cls(enqueued_time=enqueued_time)

    def __str__(self) -> str:
        if self.offset is not None:
            return f"Offset: [{self.offset}] | Inclusive: [{self.is_inclusive}]"
        if self.sequence_number is not None:
            return f"Sequence Number: [{self.sequence_number}] | Inclusive: [{self.is_inclusive}]"
        return f"Enqueued: [{self.enqueued_time.isoformat() if self.enqueued_time else None}]"


@dataclass(frozen=True)
class EventHubProperties:
    name: str
    created_on: datetime | None
    partition_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class PartitionProperties:
    event_hub_name: str
    id: str
    beginning_sequence_number: int
    last_enqueued_sequence_number: int
    last_enqueued_offset: str
    last_enqueued_time: datetime | None
    is_empty: bool


@dataclass(frozen=True)
class LastEnqueuedEventProperties:
    """Information about the last event enqueued in a partition, as of ``retrieved_time``."""

    sequence_number: int | None = None
    offset: str | None = None
    enqueued_time: datetime | None = None
    retrieved_time: datetime | None = None


class PartitionContext:
    """
    The partition an event was read from.

    ``read_last_enqueued_event_properties`` reports what the reader last
    heard about the partition's tail. It requires tracking to have been
    enabled for the read and the reader to still be open.
    """

    def __init__(
        self,
        partition_id: str,
        fully_qualified_namespace: str = "",
        event_hub_name: str = "",
        consumer_group: str = "",
        transport_consumer: Any = None,
        tracking_enabled: bool = True,
    ):
        self.partition_id = partition_id
        self.fully_qualified_namespace = fully_qualified_namespace
        self.event_hub_name = event_hub_name
        self.consumer_group = consumer_group
        self._tracking_enabled = tracking_enabled
        self._consumer_ref = weakref.ref(transport_consumer) if transport_consumer is not None else None

    def read_last_enqueued_event_properties(self) -> LastEnqueuedEventProperties:
        """
        Raises:
            ValueError: if tracking of last enqueued event properties was disabled
            EventHubsClientClosedError: if the reader is no longer available
        """
        if not self._tracking_enabled:
            raise ValueError(
                "Tracking of last enqueued event properties was not enabled for this read."
            )
        consumer = self._consumer_ref() if self._consumer_ref is not None else None
        if consumer is None or consumer.is_closed:
            raise EventHubsClientClosedError(
                "The reader for this partition is no longer available.",
                self.event_hub_name or None,
            )
        return consumer.last_received_event_properties or LastEnqueuedEventProperties()

    def __repr__(self) -> str:
        return f"PartitionContext(partition_id={self.partition_id!r}, event_hub_name={self.event_hub_name!r})"


@dataclass(frozen=True)
class PartitionEvent:
    """
    An event read from a partition. ``data`` is None for the empty event
    emitted when no event arrived within the maximum wait time; when reading
    from all partitions that empty event carries no partition either.
    """

    partition: PartitionContext | None
    data: EventData | None = field(default=None)

    @property
    def is_empty(self) -> bool:
        return self.data is None
