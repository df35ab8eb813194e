"""
Structured logging and audit trail tests.

Copyright (c) 2026 Momentum. All rights reserved.
"""

import io
import json
import logging

import pytest

from upof.observability import (
    AuditLogger,
    LogLevel,
    StructuredHandler,
    TextFormatter,
    UpofLayer,
    UpofLogger,
    generate_correlation_id,
    get_correlation_id,
    set_correlation_id,
    timed_operation,
)


@pytest.fixture
def quiet_logger():
    return UpofLogger("observability-test", UpofLayer.VAULT, level=LogLevel.DEBUG, log_format="json")


def _record(message="hello", **extra):
    record = logging.LogRecord("upof.vault.test", logging.WARNING, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredHandler:
    """Tests for JSON log output."""

    def test_emits_json_line(self):
        stream = io.StringIO()
        handler = StructuredHandler(stream)
        set_correlation_id("corr-abc")
        handler.emit(_record(
            layer="vault",
            operation="mint_escrow",
            error_code="INVALID_AMOUNT",
            context={"record_id": 1, "key": b"\x01\x02"},
        ))
        event = json.loads(stream.getvalue())
        assert event["level"] == "warning"
        assert event["message"] == "hello"
        assert event["correlation_id"] == "corr-abc"
        assert event["error_code"] == "INVALID_AMOUNT"
        assert event["context"] == {"record_id": 1, "key": "0x0102"}

    def test_empty_fields_omitted(self):
        stream = io.StringIO()
        StructuredHandler(stream).emit(_record())
        event = json.loads(stream.getvalue())
        assert "error_code" not in event
        assert "duration_ms" not in event


class TestTextFormatter:
    """Tests for human-readable output."""

    def test_appends_context(self):
        formatter = TextFormatter("%(levelname)s %(message)s")
        line = formatter.format(_record(error_code="NOT_OWNER", context={"caller": "0xabc"}))
        assert line == "WARNING hello error_code=NOT_OWNER caller=0xabc"


class TestCorrelation:
    """Tests for correlation id propagation."""

    def test_generated_when_unset(self):
        set_correlation_id("")
        cid = get_correlation_id()
        assert cid.startswith("corr-")
        assert get_correlation_id() == cid

    def test_unique(self):
        assert generate_correlation_id() != generate_correlation_id()


class TestTimedOperation:
    """Tests for the timing decorator."""

    def test_success_logged(self, quiet_logger, caplog):
        @timed_operation(quiet_logger, "work")
        def work():
            return 42

        with caplog.at_level(logging.INFO):
            assert work() == 42
        record = [r for r in caplog.records if getattr(r, "operation", "") == "work"][0]
        assert record.levelno == logging.INFO
        assert record.duration_ms >= 0

    def test_failure_logged_and_raised(self, quiet_logger, caplog):
        @timed_operation(quiet_logger, "fail")
        def fail():
            raise RuntimeError("nope")

        with caplog.at_level(logging.INFO):
            with pytest.raises(RuntimeError):
                fail()
        record = [r for r in caplog.records if getattr(r, "operation", "") == "fail"][0]
        assert record.levelno == logging.WARNING


class TestUpofLogger:
    """Tests for the per-layer logger."""

    def test_logger_name(self, quiet_logger):
        assert quiet_logger.logger.name == "upof.vault.observability-test"

    def test_error_with_context(self, quiet_logger, caplog):
        with caplog.at_level(logging.ERROR):
            try:
                raise RuntimeError("custody offline")
            except RuntimeError:
                quiet_logger.error("transfer failed", error_code="CUSTODY_DOWN", exc_info=True, asset="0x5e")
        record = caplog.records[-1]
        assert record.error_code == "CUSTODY_DOWN"
        assert record.context == {"asset": "0x5e"}
        assert record.exc_info is not None

    def test_level_from_config(self, monkeypatch):
        monkeypatch.setenv("UPOF_LOG_LEVEL", "warning")
        logger = UpofLogger("config-level-test", UpofLayer.CONFIG)
        assert logger.logger.level == logging.WARNING


class TestAuditLogger:
    """Tests for the hash-chained audit trail."""

    def test_chain_links(self, quiet_logger):
        audit = AuditLogger(quiet_logger)
        first = audit.log("0xowner", "set_signer", "signer", "0xsigner", "success", allowed=True)
        second = audit.log("0xowner", "set_revoked", "record", "1", "success", revoked=True)
        assert first.previous_hash == AuditLogger.GENESIS
        assert second.previous_hash == first.entry_hash
        assert audit.verify_chain()

    def test_tamper_detected(self, quiet_logger):
        audit = AuditLogger(quiet_logger)
        audit.log("0xowner", "set_revoked", "record", "1", "success", revoked=True)
        audit.log("0xowner", "set_revoked", "record", "2", "success", revoked=True)
        audit.entries()[0].details["revoked"] = False
        assert audit.verify_chain() is False

    def test_entries_are_a_copy(self, quiet_logger):
        audit = AuditLogger(quiet_logger)
        audit.log("0xowner", "set_soulbound", "vault", "0xvault", "success")
        audit.entries().clear()
        assert len(audit.entries()) == 1

    def test_bytes_details(self, quiet_logger):
        audit = AuditLogger(quiet_logger)
        audit.log("0xowner", "set_sanctions_version", "sanctions_version", "0x07", "success",
                  version=b"\x07" * 32)
        assert audit.verify_chain()
