"""
Event Hubs clients.

Publish with ``EventHubProducerClient`` and read with
``EventHubConsumerClient``. Both talk to the service through an
``EventHubConnection`` and the AMQP transport built on ``azure-eventhub``.
"""

from clients.eventhubs.authorization import (
    EventHubSharedKeyCredential,
    SharedAccessSignature,
    SharedAccessSignatureCredential,
)
from clients.eventhubs.batch import EventDataBatch
from clients.eventhubs.connection import EventHubConnection
from clients.eventhubs.connection_string import ConnectionStringProperties, parse_connection_string
from clients.eventhubs.consumer import DEFAULT_CONSUMER_GROUP_NAME, EventHubConsumerClient
from clients.eventhubs.errors import EventHubsClientClosedError, EventHubsError, FailureReason
from clients.eventhubs.models import (
    EventData,
    EventHubProperties,
    EventPosition,
    LastEnqueuedEventProperties,
    PartitionContext,
    PartitionEvent,
    PartitionProperties,
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
from clients.eventhubs.producer import EventHubProducerClient
from clients.eventhubs.retry import (
    BasicRetryPolicy,
    EventHubsRetryMode,
    EventHubsRetryOptions,
    EventHubsRetryPolicy,
)

__all__ = [
    # Clients
    "EventHubProducerClient",
    "EventHubConsumerClient",
    "EventHubConnection",
    "DEFAULT_CONSUMER_GROUP_NAME",
    # Credentials
    "EventHubSharedKeyCredential",
    "SharedAccessSignature",
    "SharedAccessSignatureCredential",
    "ConnectionStringProperties",
    "parse_connection_string",
    # Models
    "EventData",
    "EventDataBatch",
    "EventHubProperties",
    "EventPosition",
    "LastEnqueuedEventProperties",
    "PartitionContext",
    "PartitionEvent",
    "PartitionProperties",
    # Options
    "CreateBatchOptions",
    "EventHubConnectionOptions",
    "EventHubConsumerClientOptions",
    "EventHubProducerClientOptions",
    "ReadEventOptions",
    "SendOptions",
    "TransportType",
    # Retry
    "BasicRetryPolicy",
    "EventHubsRetryMode",
    "EventHubsRetryOptions",
    "EventHubsRetryPolicy",
    # Errors
    "EventHubsError",
    "EventHubsClientClosedError",
    "FailureReason",
]
