"""A size-limited set of events sent together in one operation."""

import logging
from collections.abc import Callable, Iterator

from clients.eventhubs.models import EventData
from clients.eventhubs.options import SendOptions

logger = logging.getLogger(__name__)

# Estimated envelope and per-event framing, used when the transport does not measure events
BATCH_OVERHEAD_BYTES = 24
EVENT_OVERHEAD_BYTES = 8


class EventDataBatch:
    """
    Events accumulated up to ``maximum_size_in_bytes``.

    Create batches with ``EventHubProducerClient.create_batch()`` so the size
    limit matches the service link. Once sent or closed a batch is sealed and
    can no longer be modified.

    ``measure`` adds the event to the transport's own batch and returns the new
    size, or None when it does not fit. Without it sizes are estimated.
    """

    def __init__(
        self,
        maximum_size_in_bytes: int,
        send_options: SendOptions | None = None,
        resource_name: str | None = None,
        measure: Callable[[EventData], int | None] | None = None,
    ):
        if maximum_size_in_bytes <= 0:
            raise ValueError(f"maximum_size_in_bytes must be positive, got {maximum_size_in_bytes}.")
        self.maximum_size_in_bytes = maximum_size_in_bytes
        self.send_options = send_options or SendOptions()
        self.resource_name = resource_name
        self._measure = measure
        self._events: list[EventData] = []
        self._size_in_bytes = BATCH_OVERHEAD_BYTES
        self._sealed = False

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def size_in_bytes(self) -> int:
        return self._size_in_bytes

    @property
    def is_sealed(self) -> bool:
        return self._sealed

    def _assert_not_sealed(self) -> None:
        if self._sealed:
            raise RuntimeError("The batch has been sent or closed and can no longer be modified.")

    def try_add(self, event: EventData) -> bool:
        """
        Add an event if it fits.

        Returns:
            False when the event would push the batch past its size limit
        """
        self._assert_not_sealed()
        if event is None:
            raise ValueError("The event must be provided.")

        if self._measure is not None:
            size = self._measure(event)
            if size is None:
                return False
        else:
            size = self._size_in_bytes + event.size_in_bytes + EVENT_OVERHEAD_BYTES
            if size > self.maximum_size_in_bytes:
                return False

        self._events.append(event)
        self._size_in_bytes = size
        return True

    @property
    def events(self) -> list[EventData]:
        return list(self._events)

    def seal(self) -> None:
        self._sealed = True

    def close(self) -> None:
        self._events.clear()
        self._size_in_bytes = BATCH_OVERHEAD_BYTES
        self._sealed = True

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[EventData]:
        return iter(list(self._events))

    def __repr__(self) -> str:
        return (
            f"EventDataBatch(count={self.count}, size_in_bytes={self.size_in_bytes}, "
            f"maximum_size_in_bytes={self.maximum_size_in_bytes})"
        )
