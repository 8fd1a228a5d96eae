"""Tests for structured logging and correlation fields."""
from __future__ import annotations

import json
import logging

from runtime_proofs.logging_config import (
    CorrelationIDFilter,
    StructuredFormatter,
    generate_request_id,
    request_id_var,
    set_proof_context,
)


def _record(msg: str = "Proof stage compressed", **extra) -> logging.LogRecord:
    record = logging.LogRecord("runtime_proofs.orchestrator", logging.INFO, __file__, 1, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_request_id_format():
    request_id = generate_request_id()

    assert request_id.startswith("req_")
    assert len(request_id) == 20


def test_structured_output_includes_context_and_extra():
    token = request_id_var.set("req_abc")
    set_proof_context("wallet-1", "sig-1")
    try:
        record = _record(stage="compressed", compressed_tx_id="sig-c")
        CorrelationIDFilter().filter(record)
        data = json.loads(StructuredFormatter().format(record))
    finally:
        request_id_var.reset(token)
        set_proof_context(None, None)

    assert data["message"] == "Proof stage compressed"
    assert data["request_id"] == "req_abc"
    assert data["user_id"] == "wallet-1"
    assert data["tx_signature"] == "sig-1"
    assert data["stage"] == "compressed"
    assert data["compressed_tx_id"] == "sig-c"


def test_absent_context_omitted():
    record = _record()
    CorrelationIDFilter().filter(record)

    data = json.loads(StructuredFormatter().format(record))

    assert "request_id" not in data
    assert data["level"] == "INFO"
