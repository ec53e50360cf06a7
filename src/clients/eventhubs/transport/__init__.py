"""Transport layer: the abstract interfaces and the AMQP implementation."""

from clients.eventhubs.transport.amqp import (
    AmqpTransportClient,
    AmqpTransportConsumer,
    AmqpTransportProducer,
)
from clients.eventhubs.transport.base import TransportClient, TransportConsumer, TransportProducer

__all__ = [
    "TransportClient",
    "TransportProducer",
    "TransportConsumer",
    "AmqpTransportClient",
    "AmqpTransportProducer",
    "AmqpTransportConsumer",
]
