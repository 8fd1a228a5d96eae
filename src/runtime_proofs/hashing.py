"""Runtime proof fingerprint.

The fingerprint binds the raw transaction bytes to the claimed timestamp and
runtime identity:

    sha256(tx_bytes || "|ts:" || <timestamp digits> || "|rid:" || <runtime id or "">)

encoded as lowercase hex. The suffix serialization is fixed and carries no
version marker, so a proof recomputed years later from the same inputs yields
the same digest.
"""
from __future__ import annotations

import hashlib
import hmac
from typing import Optional

import base58

from .exceptions import ProofStepError
from .models import ErrorCode


def fingerprint_suffix(timestamp: int, runtime_id: Optional[str] = None) -> bytes:
    return f"|ts:{int(timestamp)}|rid:{runtime_id or ''}".encode("utf-8")


def compute_runtime_proof_hash(
    tx_bytes: bytes,
    timestamp: int,
    runtime_id: Optional[str] = None,
) -> str:
    """Recompute the fingerprint for the given transaction bytes."""
    return hashlib.sha256(bytes(tx_bytes) + fingerprint_suffix(timestamp, runtime_id)).hexdigest()


def verify_runtime_proof_hash(
    tx_bytes: bytes,
    timestamp: int,
    runtime_id: Optional[str],
    claimed_hash: str,
) -> bool:
    """Return True iff claimed_hash equals the recomputed fingerprint."""
    computed = compute_runtime_proof_hash(tx_bytes, timestamp, runtime_id)
    return hmac.compare_digest(computed.encode("utf-8"), str(claimed_hash).encode("utf-8"))


def decode_tx_bytes(tx_bytes_base58: str) -> bytes:
    """Decode the caller's base58 transaction bytes."""
    try:
        return base58.b58decode(tx_bytes_base58)
    except ValueError as e:
        raise ProofStepError(
            ErrorCode.INVALID_TX_BYTES_BASE58,
            f"txBytesBase58 is not valid base58: {e}",
        ) from e
