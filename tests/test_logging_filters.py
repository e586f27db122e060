"""Tests for redaction, transaction tagging and JSON log output."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from admission.core.logging import (
    JsonFormatter,
    SensitiveDataFilter,
    TransactionIdFilter,
    create_transaction_logger,
    get_transaction_id,
    redact,
    transaction_scope,
)


@pytest.fixture
def captured() -> tuple[logging.Logger, StringIO]:
    logger = logging.getLogger("test_admission_logging")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(TransactionIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    return logger, stream


def _lines(stream: StringIO) -> list[dict]:
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_sensitive_filter_redacts_store_token(captured) -> None:
    logger, stream = captured

    logger.info(
        "rate_limit_store.configured",
        extra={"redis_token": "s3cret-token", "authorization": "Bearer abc", "timeout_s": 5.0},
    )

    output = stream.getvalue()
    assert "s3cret-token" not in output
    assert "Bearer abc" not in output
    assert "[REDACTED]" in output
    assert _lines(stream)[0]["timeout_s"] == 5.0


def test_sensitive_filter_redacts_nested_headers(captured) -> None:
    logger, stream = captured

    logger.info(
        "request.headers",
        extra={"headers": {"cookie": "session=abc", "user-agent": "pytest"}},
    )

    headers = _lines(stream)[0]["headers"]
    assert headers["cookie"] == "[REDACTED]"
    assert headers["user-agent"] == "pytest"


def test_safe_fields_pass_through(captured) -> None:
    logger, stream = captured

    logger.info(
        "rate_limit.passed",
        extra={"identifier": "1.2.3.4", "remaining": 99, "tier": "general"},
    )

    line = _lines(stream)[0]
    assert line["message"] == "rate_limit.passed"
    assert line["level"] == "info"
    assert line["identifier"] == "1.2.3.4"
    assert line["remaining"] == 99
    assert "[REDACTED]" not in stream.getvalue()


def test_transaction_id_taken_from_context(captured) -> None:
    logger, stream = captured
    with transaction_scope("tx-ctx-1"):
        logger.info("downstream.event")

    assert _lines(stream)[0]["transaction_id"] == "tx-ctx-1"


def test_bound_transaction_id_wins_over_context(captured) -> None:
    logger, stream = captured
    tx_logger = logging.LoggerAdapter(logger, {"transaction_id": "tx-bound"})
    with transaction_scope("tx-other"):
        tx_logger.info("bound.event")

    assert _lines(stream)[0]["transaction_id"] == "tx-bound"


def test_transaction_logger_output_is_correlated(captured) -> None:
    logger, stream = captured
    tx_logger = create_transaction_logger("tx-json")
    tx_logger.logger = logger

    tx_logger.warning("rate_limit.exceeded", extra={"limit": 5, "remaining": 0})

    line = _lines(stream)[0]
    assert line["transaction_id"] == "tx-json"
    assert line["level"] == "warning"
    assert line["limit"] == 5


def test_no_transaction_id_outside_a_scope(captured) -> None:
    logger, stream = captured

    logger.info("startup.event")

    assert "transaction_id" not in _lines(stream)[0]


def test_transaction_scope_restores_outer_id() -> None:
    assert get_transaction_id() is None

    with transaction_scope("tx-outer"):
        with transaction_scope("tx-inner"):
            assert get_transaction_id() == "tx-inner"
        assert get_transaction_id() == "tx-outer"

    assert get_transaction_id() is None


def test_redact_matches_header_names_case_insensitively() -> None:
    assert redact({"Authorization": "Bearer abc", "Accept": "json"}) == {
        "Authorization": "[REDACTED]",
        "Accept": "json",
    }
