"""Exception hierarchy for runtime proof anchoring.

All service-specific exceptions inherit from RuntimeProofError, which gives:
- error_code: machine-readable code (e.g., "LEDGER_RPC_ERROR")
- message: human-readable message
- details: optional context dictionary

Ledger collaborators raise LedgerError subclasses. Pipeline steps translate
those into ProofStepError carrying one of the closed ErrorCode values, which
the orchestrator turns into a ProofOutcome instead of letting it propagate.

Usage:
    from runtime_proofs.exceptions import LedgerTransactionError, ledger_logs

    try:
        signature = await ledger.send_and_confirm(instructions, signers)
    except LedgerError as e:
        raise ProofStepError(ErrorCode.MINT_TX_FAILED, str(e), logs=ledger_logs(e)) from e
"""
from __future__ import annotations

from typing import Any, Optional, Sequence

from .models import ErrorCode


class RuntimeProofError(Exception):
    """Base exception for all runtime proof errors."""

    error_code: str = "RUNTIME_PROOF_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}


# =============================================================================
# Configuration
# =============================================================================

class ConfigurationError(RuntimeProofError):
    """Required configuration (RPC endpoint, signing key) is missing or invalid."""

    error_code = "CONFIGURATION_ERROR"


# =============================================================================
# Pipeline
# =============================================================================

class ProofStepError(RuntimeProofError):
    """A pipeline step failed with one of the closed pipeline error codes."""

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        logs: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message or code.value, error_code=code.value)
        self.code = code
        self.logs = list(logs) if logs else None


class ProofStoreError(RuntimeProofError):
    """Durable storage failed."""

    error_code = "STORE_ERROR"


# =============================================================================
# Ledger
# =============================================================================

class LedgerError(RuntimeProofError):
    """Base class for ledger-facing failures."""

    error_code = "LEDGER_ERROR"

    def __init__(
        self,
        message: str,
        logs: Optional[Sequence[str]] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.logs = list(logs) if logs else None


class LedgerRPCError(LedgerError):
    """JSON-RPC call returned an error object."""

    error_code = "LEDGER_RPC_ERROR"

    def __init__(
        self,
        message: str,
        error_data: Optional[dict[str, Any]] = None,
        logs: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message, logs=logs, details={"rpc_error": error_data} if error_data else None)
        self.error_data = error_data or {}


class LedgerTransactionError(LedgerError):
    """A submitted transaction was rejected or failed on execution."""

    error_code = "LEDGER_TRANSACTION_FAILED"

    def __init__(
        self,
        message: str,
        signature: Optional[str] = None,
        logs: Optional[Sequence[str]] = None,
    ) -> None:
        super().__init__(message, logs=logs, details={"signature": signature} if signature else None)
        self.signature = signature


class ConfirmationTimeoutError(LedgerTransactionError):
    """Transaction did not reach the target commitment within the bounded wait."""

    error_code = "LEDGER_CONFIRMATION_TIMEOUT"


def ledger_logs(exc: BaseException) -> Optional[list[str]]:
    """Diagnostic log lines attached to a ledger failure, if any."""
    logs = getattr(exc, "logs", None)
    if not logs:
        return None
    return [str(line) for line in logs]
