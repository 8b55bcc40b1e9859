"""
Tests for logging setup and metrics.
"""

import json
import logging
import sys

import pytest
from prometheus_client import CollectorRegistry

from transferkit.config import LoggingConfig
from transferkit.observability import JSONFormatter, TransferMetrics, setup_logging, setup_logging_from_config


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="transferkit.transport.retry",
        level=logging.WARNING,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test structured log output."""

    def test_standard_fields(self):
        formatter = JSONFormatter(component="uploader")

        data = json.loads(formatter.format(make_record("[retry] Retry attempt 1 after 1500ms")))

        assert data["level"] == "WARNING"
        assert data["logger"] == "transferkit.transport.retry"
        assert data["message"] == "[retry] Retry attempt 1 after 1500ms"
        assert data["component"] == "uploader"
        assert "timestamp" in data

    def test_extra_fields(self):
        formatter = JSONFormatter(component="uploader")

        data = json.loads(formatter.format(make_record("retry", url="http://store.test/key", attempt=2)))

        assert data["extra"] == {"url": "http://store.test/key", "attempt": 2}

    def test_exception_is_included(self):
        formatter = JSONFormatter(component="uploader")
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record("failed")
            record.exc_info = sys.exc_info()

        data = json.loads(formatter.format(record))

        assert "ValueError: boom" in data["exception"]


class TestSetupLogging:
    """Test logger configuration."""

    @pytest.fixture(autouse=True)
    def restore_logger(self):
        logger = logging.getLogger("transferkit")
        handlers, level = logger.handlers[:], logger.level
        yield
        logger.handlers[:] = handlers
        logger.setLevel(level)

    def test_json_handler(self):
        logger = setup_logging("uploader", level="DEBUG")

        assert logger.name == "transferkit"
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_text_handler_from_config(self):
        logger = setup_logging_from_config("uploader", LoggingConfig(level="WARNING", format="text"))

        assert logger.level == logging.WARNING
        assert not isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_repeated_setup_replaces_handler(self):
        setup_logging("uploader")
        logger = setup_logging("uploader")

        assert len(logger.handlers) == 1


class TestTransferMetrics:
    """Test metric recording."""

    def test_record_part(self, transfer_metrics):
        transfer_metrics.record_part("download", "changed")

        assert transfer_metrics.registry.get_sample_value(
            "transferkit_parts_total", {"direction": "download", "outcome": "changed"}
        ) == 1.0

    def test_circuit_breaker_state(self, transfer_metrics):
        transfer_metrics.set_circuit_breaker_state("store", "half_open")

        assert transfer_metrics.registry.get_sample_value(
            "transferkit_circuit_breaker_state", {"breaker": "store"}
        ) == 2.0

    def test_disabled_metrics_are_noops(self):
        registry = CollectorRegistry()
        metrics = TransferMetrics(registry=registry, enabled=False)

        metrics.record_request("GET", 200)
        metrics.record_retry("server_error")
        metrics.record_part("upload", "skipped")
        metrics.set_circuit_breaker_state("store", "open")
        with metrics.time_request("GET"):
            pass

        assert registry.get_sample_value("transferkit_retries_total", {"reason": "server_error"}) is None
