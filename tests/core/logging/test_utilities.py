"""Tests for logging helper functions."""

import logging

from core.errors.exceptions import ThrottlingError
from core.logging.utilities import log_exception, log_with_context, mask_connection_string


class TestLogWithContext:
    def test_extra_fields_attached(self, caplog):
        logger = logging.getLogger("clients.test")
        with caplog.at_level(logging.INFO, logger="clients.test"):
            log_with_context(logger, logging.INFO, "Batch sent", eventhub="orders", event_count=3)

        record = caplog.records[0]
        assert record.eventhub == "orders"
        assert record.event_count == 3

    def test_reserved_keys_filtered(self, caplog):
        logger = logging.getLogger("clients.test")
        with caplog.at_level(logging.INFO, logger="clients.test"):
            log_with_context(logger, logging.INFO, "msg", name="clash", eventhub="orders")

        assert caplog.records[0].name == "clients.test"


class TestLogException:
    def test_category_and_message_extracted(self, caplog):
        logger = logging.getLogger("clients.test")
        error = ThrottlingError("busy sig=abc")
        with caplog.at_level(logging.ERROR, logger="clients.test"):
            log_exception(logger, error, "Send failed", eventhub="orders")

        record = caplog.records[0]
        assert record.error_category == "transient"
        assert record.error_type == "ThrottlingError"
        assert "abc" not in record.error_message
        assert record.exc_info is not None

    def test_long_messages_truncated(self, caplog):
        logger = logging.getLogger("clients.test")
        with caplog.at_level(logging.WARNING, logger="clients.test"):
            log_exception(logger, ValueError("x" * 600), "Bad", level=logging.WARNING, include_traceback=False)

        record = caplog.records[0]
        assert record.error_message.endswith("...")
        assert len(record.error_message) == 503
        assert not record.exc_info


class TestMaskConnectionString:
    def test_key_masked(self):
        conn = "Endpoint=sb://ns/;SharedAccessKeyName=k;SharedAccessKey=abc"
        assert mask_connection_string(conn) == "Endpoint=sb://ns/;SharedAccessKeyName=k;SharedAccessKey=***"

    def test_signature_masked(self):
        conn = "Endpoint=sb://ns/;SharedAccessSignature=SharedAccessSignature sr=x&sig=y"
        assert mask_connection_string(conn) == "Endpoint=sb://ns/;SharedAccessSignature=***"

    def test_empty(self):
        assert mask_connection_string("") == ""
