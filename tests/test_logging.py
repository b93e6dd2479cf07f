"""Tests for the structured logging system (ledger_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import UnbalancedEntryError
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Start each test unconfigured; restore the suite configuration after."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


def _parse_log(stream: StringIO) -> dict:
    return _parse_all_logs(stream)[0]


class TestStructuredFormatter:
    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "ledger_kernel.test"
        assert "ts" in record

    def test_extra_fields_with_money_and_dates(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        entry_id = uuid4()
        get_logger("test").info(
            "journal_entry_posted",
            extra={"entry_id": entry_id, "total_debit": Decimal("500.00"), "entry_date": date(2025, 9, 15)},
        )

        record = _parse_log(stream)
        assert record["entry_id"] == str(entry_id)
        assert record["total_debit"] == "500.00"
        assert record["entry_date"] == "2025-09-15"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="req-1", voucher_number="JV-001/09-25")
        get_logger("test").info("context_message")

        record = _parse_log(stream)
        assert record["correlation_id"] == "req-1"
        assert record["voucher_number"] == "JV-001/09-25"

    def test_ledger_error_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise UnbalancedEntryError("entry-1", "100.00", "90.00")
        except UnbalancedEntryError:
            get_logger("test").error("post_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "UnbalancedEntryError"
        assert record["exc_code"] == "UNBALANCED_ENTRY"
        assert record["exc_debits"] == "100.00"
        assert record["exc_credits"] == "90.00"
        assert "traceback" in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("hidden")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["first", "second"]


class TestLogContext:
    def test_set_and_clear(self):
        LogContext.set(actor_id="a", entry_id="e")
        assert LogContext.get_all() == {"actor_id": "a", "entry_id": "e"}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous_value(self):
        LogContext.set(entry_id="outer")
        with LogContext.bind(entry_id="inner", voucher_number="JV-002/09-25"):
            assert LogContext.get_all()["entry_id"] == "inner"
        assert LogContext.get_all() == {"entry_id": "outer"}

    def test_bind_ignores_none(self):
        with LogContext.bind(actor_id=None):
            assert "actor_id" not in LogContext.get_all()

    def test_bind_rejects_unknown_field(self):
        with pytest.raises(TypeError):
            with LogContext.bind(account_code="1001"):
                pass

    def test_extra_does_not_override_context(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        with LogContext.bind(entry_id="from-context"):
            get_logger("test").info("m", extra={"entry_id": "from-extra"})
        assert _parse_log(stream)["entry_id"] == "from-context"

    def test_reserved_extra_key_is_rejected_by_logging(self):
        """``created`` belongs to LogRecord; counts must use another key."""
        with pytest.raises(KeyError):
            get_logger("test").warning("seeded", extra={"created": 1})


class TestConfigureLogging:
    def test_idempotent(self):
        first, first_stream = _make_handler()
        configure_logging(handler=first)
        second, second_stream = _make_handler()
        configure_logging(handler=second)

        handlers = logging.getLogger("ledger_kernel").handlers
        assert first in handlers
        assert second not in handlers
        get_logger("test").warning("once")
        assert [r["message"] for r in _parse_all_logs(first_stream)] == ["once"]
        assert second_stream.getvalue() == ""

    def test_reset_detaches_handler(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler)
        reset_logging()
        assert handler not in logging.getLogger("ledger_kernel").handlers

    def test_level_name_accepted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level="debug")
        get_logger("test").debug("visible")
        assert _parse_log(stream)["message"] == "visible"

    def test_child_loggers_share_configuration(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.journal").debug("voucher_allocated")

        record = _parse_log(stream)
        assert record["logger"] == "ledger_kernel.services.journal"
