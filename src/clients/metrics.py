"""
Prometheus metrics for the service clients.

Focused on essential metrics:
- Events sent and received per event hub
- Send errors by error type
- Vault request counts by method and status, and request duration
- Connection status per client

Metrics live in a dedicated registry so that embedding applications decide
whether and how to expose them (``generate_latest(REGISTRY)``).
"""

import logging

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry(auto_describe=True)


# =============================================================================
# Event Hubs
# =============================================================================

events_sent_counter = Counter(
    "eventhubs_events_sent_total",
    "Total number of events sent to event hubs",
    labelnames=["eventhub"],
    registry=REGISTRY,
)

events_received_counter = Counter(
    "eventhubs_events_received_total",
    "Total number of events received from event hubs",
    labelnames=["eventhub", "consumer_group"],
    registry=REGISTRY,
)

send_errors_counter = Counter(
    "eventhubs_send_errors_total",
    "Total send failures by error type",
    labelnames=["eventhub", "error_type"],
    registry=REGISTRY,
)

receive_errors_counter = Counter(
    "eventhubs_receive_errors_total",
    "Total partition receive failures by error type",
    labelnames=["eventhub", "consumer_group", "error_type"],
    registry=REGISTRY,
)

send_duration_seconds = Histogram(
    "eventhubs_send_duration_seconds",
    "Time spent sending a set of events or a batch",
    labelnames=["eventhub"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0],
    registry=REGISTRY,
)

connection_status_gauge = Gauge(
    "clients_connection_status",
    "Client connection status (1=open, 0=closed)",
    labelnames=["component"],
    registry=REGISTRY,
)


# =============================================================================
# Key Vault
# =============================================================================

vault_requests_counter = Counter(
    "keyvault_requests_total",
    "Total vault HTTP requests by method and status",
    labelnames=["method", "status"],
    registry=REGISTRY,
)

vault_request_duration_seconds = Histogram(
    "keyvault_request_duration_seconds",
    "Vault HTTP request duration",
    labelnames=["method"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_events_sent(eventhub: str, count: int, success: bool = True, error_type: str = "send_failed") -> None:
    """Record events sent (or a failed send attempt)."""
    if success:
        events_sent_counter.labels(eventhub=eventhub).inc(count)
    else:
        send_errors_counter.labels(eventhub=eventhub, error_type=error_type).inc()


def record_events_received(eventhub: str, consumer_group: str, count: int) -> None:
    """Record events received from a partition."""
    if count:
        events_received_counter.labels(eventhub=eventhub, consumer_group=consumer_group).inc(count)


def record_receive_error(eventhub: str, consumer_group: str, error_type: str) -> None:
    receive_errors_counter.labels(
        eventhub=eventhub, consumer_group=consumer_group, error_type=error_type
    ).inc()


def record_vault_request(method: str, status: int | str, duration: float) -> None:
    """Record a completed vault HTTP request."""
    vault_requests_counter.labels(method=method, status=str(status)).inc()
    vault_request_duration_seconds.labels(method=method).observe(duration)


def update_connection_status(component: str, connected: bool) -> None:
    connection_status_gauge.labels(component=component).set(1 if connected else 0)


__all__ = [
    "REGISTRY",
    "events_sent_counter",
    "events_received_counter",
    "send_errors_counter",
    "receive_errors_counter",
    "send_duration_seconds",
    "connection_status_gauge",
    "vault_requests_counter",
    "vault_request_duration_seconds",
    "record_events_sent",
    "record_events_received",
    "record_receive_error",
    "record_vault_request",
    "update_connection_status",
]
