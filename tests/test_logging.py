"""Tests for the structured logging system (docpost_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from docpost_kernel.exceptions import UnknownWarehouseError
from docpost_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite configuration."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Route docpost logs into a buffer; call the fixture value to get parsed records."""
    buffer = StringIO()
    configure_logging(handler=logging.StreamHandler(buffer))
    return lambda: [json.loads(line) for line in buffer.getvalue().splitlines() if line]


class TestStructuredFormatter:

    def test_basic_json_output(self, emitted):
        get_logger("test").info("hello")

        record = emitted()[0]
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "docpost.test"
        assert "ts" in record

    def test_extra_fields_included(self, emitted):
        get_logger("test").info("document_posted", extra={"entry_no": "JE-20240228-0001", "count": 2})

        record = emitted()[0]
        assert record["entry_no"] == "JE-20240228-0001"
        assert record["count"] == 2

    def test_context_fields_included(self, emitted):
        document_id = str(uuid4())

        with LogContext.bind(document_id=document_id, actor_id="ops"):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = emitted()
        assert inside["document_id"] == document_id
        assert inside["actor_id"] == "ops"
        assert "document_id" not in outside

    def test_docpost_error_fields(self, emitted):
        try:
            raise UnknownWarehouseError("ACME")
        except UnknownWarehouseError:
            get_logger("test").error("failed", exc_info=True)

        record = emitted()[0]
        assert record["exc_type"] == "UnknownWarehouseError"
        assert record["exc_code"] == "UNKNOWN_WAREHOUSE"
        assert record["exc_warehouse_code"] == "ACME"
        assert "traceback" in record

    def test_uuid_and_decimal_serialized(self, emitted):
        value = uuid4()

        get_logger("test").info("values", extra={"item_id": value, "qty": Decimal("10.500")})

        record = emitted()[0]
        assert record["item_id"] == str(value)
        assert record["qty"] == "10.500"


class TestLogContext:

    def test_bind_restores_previous(self):
        LogContext.set(document_id="outer")

        with LogContext.bind(document_id="inner"):
            assert LogContext.get_all()["document_id"] == "inner"

        assert LogContext.get_all()["document_id"] == "outer"

    def test_none_values_ignored(self):
        with LogContext.bind(document_id=None, journal_id="j1"):
            assert LogContext.get_all() == {"journal_id": "j1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            LogContext.set(tenant="acme")

    def test_clear(self):
        LogContext.set(correlation_id="c1", actor_id="a1")
        LogContext.clear()

        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_idempotent(self):
        configure_logging()
        configure_logging()

        handlers = logging.getLogger("docpost").handlers
        assert len([h for h in handlers if isinstance(h.formatter, StructuredFormatter)]) == 1

    def test_logger_hierarchy(self):
        logger = get_logger("services.posting")

        assert logger.name == "docpost.services.posting"
        assert logger.parent.name in ("docpost.services", "docpost")
