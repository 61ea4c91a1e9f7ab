"""Tests for structured logging setup."""
import orjson
import pytest
import structlog

from eventscheduler.logging import get_logger, setup_logging


@pytest.fixture(autouse=True)
def reset_structlog():
    yield
    structlog.reset_defaults()


def test_json_log_format(capsys):
    """Test JSON entries carry the standard fields."""
    setup_logging(json_output=True, service_name="billing")

    get_logger().info("scheduler.request", operation="get", status_code=200)

    entry = orjson.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert entry["event"] == "scheduler.request"
    assert entry["service"] == "billing"
    assert entry["level"] == "info"
    assert entry["operation"] == "get"
    assert "ts" in entry


def test_contextvars_merged(capsys):
    """Test values bound to the context appear in entries."""
    setup_logging(json_output=True)
    structlog.contextvars.bind_contextvars(transaction_id="trx-1")
    try:
        get_logger().warning("compensation.failed")
    finally:
        structlog.contextvars.clear_contextvars()

    entry = orjson.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert entry["transaction_id"] == "trx-1"
    assert entry["service"] == "eventscheduler"


def test_level_filtering(capsys):
    """Test entries below the configured level are dropped."""
    setup_logging(json_output=False)

    get_logger().debug("transport.response")

    assert "transport.response" not in capsys.readouterr().out
