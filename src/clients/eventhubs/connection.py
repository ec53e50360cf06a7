"""
A connection to a single event hub.

``EventHubConnection`` resolves credentials, owns the transport client and
is the single place clients go through for service operations. It may be
shared by several clients; a client that did not create the connection
never closes it.
"""

import logging
from typing import Any

from clients.eventhubs.authorization import (
    EventHubSharedKeyCredential,
    SharedAccessSignature,
    SharedAccessSignatureCredential,
    build_resource,
)
from clients.eventhubs.connection_string import parse_connection_string
from clients.eventhubs.errors import EventHubsClientClosedError
from clients.eventhubs.models import EventHubProperties, EventPosition, PartitionProperties
from clients.eventhubs.options import EventHubConnectionOptions
from clients.eventhubs.retry import EventHubsRetryPolicy
from clients.eventhubs.transport.amqp import AmqpTransportClient
from clients.eventhubs.transport.base import TransportClient, TransportConsumer, TransportProducer
from clients.metrics import update_connection_status
from core.logging.utilities import mask_connection_string

logger = logging.getLogger(__name__)


def _require(value: str | None, name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{name} must be provided and not blank.")
    return value


class EventHubConnection:
    """
    A connection to an event hub.

    Build one with ``from_connection_string`` or from a namespace, event hub
    name and credential. ``transport_client`` replaces the default AMQP
    transport (used by tests and alternative transports).
    """

    def __init__(
        self,
        fully_qualified_namespace: str,
        event_hub_name: str,
        credential: Any,
        connection_options: EventHubConnectionOptions | None = None,
        transport_client: TransportClient | None = None,
    ):
        _require(fully_qualified_namespace, "fully_qualified_namespace")
        _require(event_hub_name, "event_hub_name")
        if credential is None:
            raise ValueError("credential must be provided.")

        if isinstance(credential, EventHubSharedKeyCredential):
            credential = credential.as_sas_credential(
                build_resource(fully_qualified_namespace, event_hub_name)
            )

        self.fully_qualified_namespace = fully_qualified_namespace
        self.event_hub_name = event_hub_name
        self.credential = credential
        self.connection_options = (connection_options or EventHubConnectionOptions()).clone()
        self._transport = transport_client or AmqpTransportClient(
            fully_qualified_namespace,
            event_hub_name,
            credential,
            self.connection_options,
        )
        self._closed = False
        update_connection_status("eventhub_connection", connected=True)

        logger.debug(
            "Event Hub connection created",
            extra={"namespace": fully_qualified_namespace, "eventhub": event_hub_name},
        )

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        event_hub_name: str | None = None,
        connection_options: EventHubConnectionOptions | None = None,
        transport_client: TransportClient | None = None,
    ) -> "EventHubConnection":
        """
        Build a connection from a namespace or event hub connection string.

        An ``EntityPath`` in the connection string and an explicit
        ``event_hub_name`` must agree.
        """
        _require(connection_string, "connection_string")
        if event_hub_name is not None:
            _require(event_hub_name, "event_hub_name")

        try:
            props = parse_connection_string(connection_string)
        except ValueError:
            logger.error(
                "Invalid Event Hubs connection string",
                extra={"error_message": mask_connection_string(connection_string)[:200]},
            )
            raise

        if props.event_hub_name and event_hub_name and props.event_hub_name != event_hub_name:
            raise ValueError(
                "The event hub name given does not match the EntityPath of the connection string: "
                f"'{event_hub_name}' != '{props.event_hub_name}'."
            )

        hub = event_hub_name or props.event_hub_name
        if not hub:
            raise ValueError(
                "The event hub name must be given explicitly or as the EntityPath of the connection string."
            )

        resource = build_resource(props.fully_qualified_namespace, hub)
        if props.shared_access_signature:
            signature = SharedAccessSignature.parse(props.shared_access_signature)
        else:
            signature = SharedAccessSignature(
                resource, props.shared_access_key_name, props.shared_access_key
            )

        return cls(
            props.fully_qualified_namespace,
            hub,
            SharedAccessSignatureCredential(signature),
            connection_options=connection_options,
            transport_client=transport_client,
        )

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def transport_client(self) -> TransportClient:
        return self._transport

    def _assert_open(self) -> None:
        if self._closed:
            raise EventHubsClientClosedError(
                "The connection has been closed and can no longer be used.",
                self.event_hub_name,
            )

    async def get_properties(self, retry_policy: EventHubsRetryPolicy) -> EventHubProperties:
        self._assert_open()
        return await self._transport.get_properties(retry_policy)

    async def get_partition_ids(self, retry_policy: EventHubsRetryPolicy) -> list[str]:
        properties = await self.get_properties(retry_policy)
        return list(properties.partition_ids)

    async def get_partition_properties(
        self, partition_id: str, retry_policy: EventHubsRetryPolicy
    ) -> PartitionProperties:
        self._assert_open()
        _require(partition_id, "partition_id")
        return await self._transport.get_partition_properties(partition_id, retry_policy)

    def create_transport_producer(
        self, partition_id: str | None, retry_policy: EventHubsRetryPolicy
    ) -> TransportProducer:
        self._assert_open()
        return self._transport.create_producer(partition_id, retry_policy)

    def create_transport_consumer(
        self,
        consumer_group: str,
        partition_id: str,
        event_position: EventPosition,
        retry_policy: EventHubsRetryPolicy,
        track_last_enqueued_event_properties: bool = True,
        owner_level: int | None = None,
        prefetch_count: int | None = None,
    ) -> TransportConsumer:
        self._assert_open()
        _require(consumer_group, "consumer_group")
        _require(partition_id, "partition_id")
        return self._transport.create_consumer(
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
        try:
            await self._transport.close()
        finally:
            update_connection_status("eventhub_connection", connected=False)
            logger.debug("Event Hub connection closed", extra={"eventhub": self.event_hub_name})

    async def __aenter__(self) -> "EventHubConnection":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
