"""Tests for EventHubConnection."""

import pytest
from eventhub_fakes import CONNECTION_STRING, EVENT_HUB, NAMESPACE, FakeTransportClient

from clients.eventhubs.authorization import (
    EventHubSharedKeyCredential,
    SharedAccessSignature,
    SharedAccessSignatureCredential,
)
from clients.eventhubs.connection import EventHubConnection
from clients.eventhubs.errors import EventHubsClientClosedError
from clients.eventhubs.models import EventPosition
from clients.eventhubs.retry import BasicRetryPolicy, EventHubsRetryOptions

POLICY = BasicRetryPolicy(EventHubsRetryOptions())


class TestFromConnectionString:
    def test_entity_path_used(self, transport):
        connection = EventHubConnection.from_connection_string(CONNECTION_STRING, transport_client=transport)

        assert connection.fully_qualified_namespace == NAMESPACE
        assert connection.event_hub_name == EVENT_HUB
        assert isinstance(connection.credential, SharedAccessSignatureCredential)
        assert connection.credential.signature.resource == f"amqps://{NAMESPACE}/{EVENT_HUB}"
        assert connection.credential.signature.can_extend

    def test_explicit_name_without_entity_path(self, transport):
        conn_str = CONNECTION_STRING.replace(f";EntityPath={EVENT_HUB}", "")
        connection = EventHubConnection.from_connection_string(conn_str, "other", transport_client=transport)
        assert connection.event_hub_name == "other"

    def test_mismatched_names_rejected(self, transport):
        with pytest.raises(ValueError, match="does not match"):
            EventHubConnection.from_connection_string(CONNECTION_STRING, "other", transport_client=transport)

    def test_missing_name_rejected(self, transport):
        conn_str = CONNECTION_STRING.replace(f";EntityPath={EVENT_HUB}", "")
        with pytest.raises(ValueError, match="must be given"):
            EventHubConnection.from_connection_string(conn_str, transport_client=transport)

    def test_blank_event_hub_name_rejected(self, transport):
        with pytest.raises(ValueError):
            EventHubConnection.from_connection_string(CONNECTION_STRING, "  ", transport_client=transport)

    def test_shared_access_signature_connection_string(self, transport):
        signature = SharedAccessSignature(f"amqps://{NAMESPACE}/{EVENT_HUB}", "listen", "key")
        conn_str = f"Endpoint=sb://{NAMESPACE}/;SharedAccessSignature={signature.value};EntityPath={EVENT_HUB}"

        connection = EventHubConnection.from_connection_string(conn_str, transport_client=transport)

        assert connection.credential.signature.value == signature.value
        assert not connection.credential.signature.can_extend

    def test_invalid_connection_string_logged_masked(self, transport, caplog):
        with pytest.raises(ValueError):
            EventHubConnection.from_connection_string(
                "SharedAccessKeyName=k;SharedAccessKey=topsecret", transport_client=transport
            )
        assert "topsecret" not in caplog.text


class TestConstructor:
    def test_shared_key_credential_scoped_to_hub(self, transport):
        connection = EventHubConnection(
            NAMESPACE, EVENT_HUB, EventHubSharedKeyCredential("send", "key"), transport_client=transport
        )
        assert connection.credential.signature.resource == f"amqps://{NAMESPACE}/{EVENT_HUB}"

    def test_token_credential_kept(self, transport):
        credential = object()
        connection = EventHubConnection(NAMESPACE, EVENT_HUB, credential, transport_client=transport)
        assert connection.credential is credential

    @pytest.mark.parametrize(
        "namespace,hub,credential",
        [("", EVENT_HUB, object()), (NAMESPACE, " ", object()), (NAMESPACE, EVENT_HUB, None)],
    )
    def test_validation(self, namespace, hub, credential):
        with pytest.raises(ValueError):
            EventHubConnection(namespace, hub, credential, transport_client=FakeTransportClient())


class TestOperations:
    async def test_properties_and_partition_ids(self, connection, transport):
        properties = await connection.get_properties(POLICY)
        assert properties.name == EVENT_HUB
        assert await connection.get_partition_ids(POLICY) == ["0", "1"]
        assert transport.retry_policies[0] is POLICY

    async def test_partition_properties(self, connection):
        properties = await connection.get_partition_properties("1", POLICY)
        assert properties.id == "1"
        with pytest.raises(ValueError):
            await connection.get_partition_properties(" ", POLICY)

    def test_create_transport_consumer_passes_settings(self, connection, transport):
        connection.create_transport_consumer(
            "$Default", "0", EventPosition.latest(), POLICY, owner_level=4, prefetch_count=10
        )
        settings = transport.consumers[0].settings
        assert settings["owner_level"] == 4
        assert settings["prefetch_count"] == 10
        assert settings["retry_policy"] is POLICY

    async def test_close_is_idempotent(self, connection, transport):
        await connection.close()
        await connection.close()
        assert connection.is_closed
        assert transport.closed

    async def test_closed_connection_rejects_operations(self, connection):
        await connection.close()
        with pytest.raises(EventHubsClientClosedError):
            await connection.get_properties(POLICY)
        with pytest.raises(EventHubsClientClosedError):
            connection.create_transport_producer(None, POLICY)

    async def test_async_context_manager(self, transport):
        async with EventHubConnection.from_connection_string(
            CONNECTION_STRING, transport_client=transport
        ) as connection:
            assert not connection.is_closed
        assert transport.closed
