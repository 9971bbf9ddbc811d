"""Tests for structured logging configuration."""

import json
import logging
from io import StringIO

from dosewatch.logging_config import (
    JsonFormatter,
    StructuredLogger,
    TextFormatter,
    correlation_id_ctx,
    dose_id_ctx,
    get_logger,
    setup_logging,
)


def make_record(msg: str = "Test", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="test.logger",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=msg,
        args=(),
        exc_info=None,
    )


class TestJsonFormatter:
    """Tests for JSON log formatting."""

    def test_json_format_basic(self):
        formatter = JsonFormatter(service_name="test-service")

        parsed = json.loads(formatter.format(make_record("Test message")))

        assert parsed["level"] == "INFO"
        assert parsed["service"] == "test-service"
        assert parsed["message"] == "Test message"
        assert parsed["logger"] == "test.logger"
        assert "timestamp" in parsed
        assert "correlation_id" not in parsed
        assert "dose_id" not in parsed

    def test_json_format_with_trace_ids(self):
        formatter = JsonFormatter()
        correlation_token = correlation_id_ctx.set("corr-123")
        dose_token = dose_id_ctx.set("m1:2024-01-01:08:00")
        try:
            parsed = json.loads(formatter.format(make_record()))
        finally:
            dose_id_ctx.reset(dose_token)
            correlation_id_ctx.reset(correlation_token)

        assert parsed["correlation_id"] == "corr-123"
        assert parsed["dose_id"] == "m1:2024-01-01:08:00"

    def test_json_format_extra_fields(self):
        formatter = JsonFormatter()
        record = make_record()
        record.extra_fields = {"level_name": "Family Alert", "delivered": 2}

        parsed = json.loads(formatter.format(record))

        assert parsed["level_name"] == "Family Alert"
        assert parsed["delivered"] == 2

    def test_json_format_error_location(self):
        formatter = JsonFormatter()

        parsed = json.loads(formatter.format(make_record(level=logging.ERROR)))

        assert parsed["location"]["line"] == 10


class TestTextFormatter:
    """Tests for text log formatting."""

    def test_text_format_includes_dose_id_and_extras(self):
        formatter = TextFormatter(service_name="test-service")
        record = make_record("Executing escalation level")
        record.extra_fields = {"level": 2}
        token = dose_id_ctx.set("d1")
        try:
            output = formatter.format(record)
        finally:
            dose_id_ctx.reset(token)

        assert "test-service - INFO - [-/d1] - Executing escalation level level=2" in output


class TestStructuredLogger:
    """Tests for StructuredLogger and setup_logging."""

    def test_get_logger(self):
        assert isinstance(get_logger("dosewatch.test"), StructuredLogger)

    def test_extra_fields_reach_handler(self):
        setup_logging(log_format="json", log_level="DEBUG", service_name="test-service")
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter(service_name="test-service"))
        logging.getLogger().addHandler(handler)
        try:
            get_logger("dosewatch.test").warning("Skipping contact", contact_id="c1")
        finally:
            logging.getLogger().removeHandler(handler)

        parsed = json.loads(stream.getvalue().strip().splitlines()[-1])
        assert parsed["message"] == "Skipping contact"
        assert parsed["contact_id"] == "c1"
        assert parsed["level"] == "WARNING"
