import pytest
from eventhub_fakes import CONNECTION_STRING, FakeTransportClient

from clients.eventhubs.connection import EventHubConnection
from clients.eventhubs.retry import EventHubsRetryMode, EventHubsRetryOptions


@pytest.fixture
def fast_retry_options():
    return EventHubsRetryOptions(
        mode=EventHubsRetryMode.FIXED,
        maximum_retries=3,
        delay=0.001,
        maximum_delay=0.01,
        try_timeout=5.0,
    )


@pytest.fixture
def transport():
    return FakeTransportClient()


@pytest.fixture
def connection(transport):
    return EventHubConnection.from_connection_string(CONNECTION_STRING, transport_client=transport)
