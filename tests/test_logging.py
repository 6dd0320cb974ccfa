"""Tests for ledger_kernel.logging_config: JSON lines, context binding and setup."""

import json
import logging
import threading
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from ledger_kernel.domain.ledger import TransactionStatus
from ledger_kernel.domain.rules import RuleHit, RuleResult, Severity
from ledger_kernel.exceptions import PeriodNotOpen, ValidationBlocked
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

@pytest.fixture(autouse=True)
def _isolated_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()

class JsonLog:
    """A StringIO-backed handler plus a reader for the lines written to it."""

    def __init__(self):
        self.stream = StringIO()
        self.handler = logging.StreamHandler(self.stream)
        self.handler.setFormatter(StructuredFormatter())

    def records(self) -> list[dict]:
        return [json.loads(line) for line in self.stream.getvalue().splitlines() if line]

    def last(self) -> dict:
        return self.records()[-1]

@pytest.fixture
def json_log() -> JsonLog:
    """JsonLog already attached through configure_logging."""
    log = JsonLog()
    configure_logging(handler=log.handler)
    return log

log = get_logger("test")

class TestFormatter:

    def test_envelope(self, json_log):
        log.info("hello")

        line = json_log.last()
        assert (line["level"], line["message"], line["logger"]) == ("INFO", "hello", "ledger_kernel.test")
        assert line["ts"].endswith("+00:00")

    def test_extra_fields(self, json_log):
        log.info("posted", extra={"transaction_count": 3, "period_code": "2025-01"})

        line = json_log.last()
        assert line["transaction_count"] == 3
        assert line["period_code"] == "2025-01"

    def test_ledger_values(self, json_log):
        transaction_id = uuid4()
        log.info(
            "values",
            extra={
                "transaction_id": transaction_id,
                "amount": Decimal("120.00"),
                "status": TransactionStatus.POSTED,
                "rule_codes": ("A", "B"),
            },
        )

        line = json_log.last()
        assert line["transaction_id"] == str(transaction_id)
        assert line["amount"] == "120.00"
        assert line["status"] == "posted"
        assert line["rule_codes"] == ["A", "B"]

    def test_plain_exception(self, json_log):
        try:
            raise ValueError("boom")
        except ValueError:
            log.error("failed", exc_info=True)

        line = json_log.last()
        assert (line["exc_type"], line["exc_message"]) == ("ValueError", "boom")
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_ledger_error_code(self, json_log):
        try:
            raise PeriodNotOpen("company-1", "2025-01", "locked")
        except PeriodNotOpen:
            log.error("period_error", exc_info=True)

        line = json_log.last()
        assert line["exc_code"] == "PERIOD_NOT_OPEN"
        assert line["exc_type"] == "PeriodNotOpen"
        assert line["exc_period_code"] == "2025-01"
        assert line["exc_status"] == "locked"

    def test_refusal_lists_block_codes(self, json_log):
        result = RuleResult(
            blocks=(RuleHit("CLOSING_DRAFT_TRANSACTIONS", Severity.BLOCK, "Drafts", "", ""),)
        )
        try:
            raise ValidationBlocked("period_closing", result)
        except ValidationBlocked:
            log.warning("refused", exc_info=True)

        line = json_log.last()
        assert line["exc_code"] == "VALIDATION_BLOCKED"
        assert line["exc_block_codes"] == ["CLOSING_DRAFT_TRANSACTIONS"]
        assert "exc_result" not in line

class TestLogContext:

    def test_fields_on_every_line(self, json_log):
        LogContext.set(company_id="company-1", correlation_id="req-1")
        log.info("first")
        log.info("second")

        for line in json_log.records():
            assert line["company_id"] == "company-1"
            assert line["correlation_id"] == "req-1"
            assert "period" not in line

    def test_context_wins_over_extra(self, json_log):
        LogContext.set(company_id="company-1")
        log.info("msg", extra={"company_id": "company-2"})

        assert json_log.last()["company_id"] == "company-1"

    def test_bind_restores_previous_values(self):
        LogContext.set(company_id="company-1")

        with LogContext.bind(company_id="company-2", period="2025-01"):
            assert LogContext.get_all() == {"company_id": "company-2", "period": "2025-01"}

        assert LogContext.get_all() == {"company_id": "company-1"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(actor_id="user-1"):
                raise RuntimeError("inside")
        assert LogContext.get_all() == {}

    def test_none_values_ignored(self):
        LogContext.set(company_id="company-1")
        LogContext.set(company_id=None, actor_id="user-1")
        assert LogContext.get_all() == {"company_id": "company-1", "actor_id": "user-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="event_id"):
            LogContext.set(event_id="evt-1")
        with pytest.raises(TypeError):
            with LogContext.bind(trace_id="t-1"):
                pass

    def test_clear(self):
        LogContext.set(company_id="company-1", period="2025-01")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_threads_do_not_share_context(self):
        LogContext.set(company_id="main")
        seen = {}

        def worker():
            LogContext.set(company_id="worker")
            seen["worker"] = LogContext.get_all()

        thread = threading.Thread(target=worker)
        thread.start()
        thread.join()

        assert seen["worker"] == {"company_id": "worker"}
        assert LogContext.get_all() == {"company_id": "main"}

class TestConfigureLogging:

    def test_second_call_is_ignored(self):
        sink = JsonLog()
        assert configure_logging(handler=sink.handler)
        assert not configure_logging(handler=sink.handler)

        log.info("once")

        assert len(sink.records()) == 1

    def test_level_by_name(self):
        sink = JsonLog()
        configure_logging(level="warning", handler=sink.handler)

        log.info("dropped")
        log.warning("kept")

        assert [line["message"] for line in sink.records()] == ["kept"]

    def test_unknown_level_name(self):
        with pytest.raises(ValueError, match="LOUD"):
            configure_logging(level="LOUD")
        assert configure_logging(handler=JsonLog().handler)

    def test_reset_detaches_handler(self):
        configure_logging(handler=JsonLog().handler)

        reset_logging()

        assert logging.getLogger("ledger_kernel").handlers == []
