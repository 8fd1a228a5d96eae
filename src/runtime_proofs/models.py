"""Domain models for runtime proof anchoring."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

CHAIN = "solana"

MIN_BATCH_COUNT = 1
MAX_BATCH_COUNT = 50
DEFAULT_BATCH_COUNT = 1


class PipelineStage(str, Enum):
    """Forward-only stages of the anchoring pipeline."""
    RECEIVED = "received"
    HASH_VERIFIED = "hash_verified"
    TX_CONFIRMED = "tx_confirmed"
    MINT_READY = "mint_ready"
    COMPRESSED = "compressed"
    PERSISTED = "persisted"


class ErrorCode(str, Enum):
    """Stable error codes returned to callers."""

    # Pipeline
    INVALID_TX_BYTES_BASE58 = "INVALID_TX_BYTES_BASE58"
    RUNTIME_HASH_MISMATCH = "RUNTIME_HASH_MISMATCH"
    TX_NOT_FOUND = "TX_NOT_FOUND"
    MINT_AUTHORITY_MISSING = "MINT_AUTHORITY_MISSING"
    MINT_TX_FAILED = "MINT_TX_FAILED"
    CREATE_POOL_FAILED = "CREATE_POOL_FAILED"
    PREPARE_ATA_OR_MINT_FAILED = "PREPARE_ATA_OR_MINT_FAILED"
    COMPRESS_TX_FAILED = "COMPRESS_TX_FAILED"
    PERSIST_FAILED = "PERSIST_FAILED"

    # HTTP boundary
    INVALID_BODY = "INVALID_BODY"
    INVALID_WALLET = "INVALID_WALLET"
    INTERNAL = "INTERNAL"


ERROR_HTTP_STATUS: dict[ErrorCode, int] = {
    ErrorCode.INVALID_TX_BYTES_BASE58: 400,
    ErrorCode.RUNTIME_HASH_MISMATCH: 422,
    ErrorCode.TX_NOT_FOUND: 404,
    ErrorCode.MINT_AUTHORITY_MISSING: 500,
    ErrorCode.MINT_TX_FAILED: 502,
    ErrorCode.CREATE_POOL_FAILED: 502,
    ErrorCode.PREPARE_ATA_OR_MINT_FAILED: 502,
    ErrorCode.COMPRESS_TX_FAILED: 502,
    ErrorCode.PERSIST_FAILED: 500,
    ErrorCode.INVALID_BODY: 400,
    ErrorCode.INVALID_WALLET: 400,
    ErrorCode.INTERNAL: 500,
}


def clamp_batch_count(value: Optional[int]) -> int:
    """Clamp a requested batch count into [1, 50]; None means the default."""
    if value is None:
        return DEFAULT_BATCH_COUNT
    return max(MIN_BATCH_COUNT, min(MAX_BATCH_COUNT, int(value)))


@dataclass(frozen=True, slots=True)
class ProofRequest:
    """A caller's claim that a runtime action occurred."""
    tx_signature: str
    tx_bytes_base58: str
    runtime_proof_hash: str
    timestamp: int  # epoch millis
    user_id: str
    runtime_id: Optional[str] = None
    batch_count: Optional[int] = None

    @property
    def amount(self) -> int:
        return clamp_batch_count(self.batch_count)

    def metadata(self, chain: str = CHAIN) -> dict[str, Any]:
        return {
            "txHash": self.tx_signature,
            "runtimeProofHash": self.runtime_proof_hash,
            "userId": self.user_id,
            "timestamp": self.timestamp,
            "runtimeId": self.runtime_id or "",
            "chain": chain,
        }

    def attributes(self, chain: str = CHAIN) -> list[tuple[str, str]]:
        """Key/value pairs written into the token metadata."""
        return [(key, str(value)) for key, value in self.metadata(chain).items()]


@dataclass(slots=True)
class AnchoredProof:
    """A persisted, ledger-anchored proof."""
    tx_signature: str
    tx_bytes_base58: str
    runtime_proof_hash: str
    user_id: str
    runtime_id: Optional[str]
    timestamp: int
    mint_address: str
    mint_tx_id: str
    compressed_tx_id: str
    chain: str = CHAIN
    created_at: Optional[datetime] = None
    id: Optional[int] = None

    @classmethod
    def from_request(
        cls,
        request: ProofRequest,
        *,
        mint_address: str,
        mint_tx_id: str,
        compressed_tx_id: str,
        chain: str = CHAIN,
    ) -> "AnchoredProof":
        return cls(
            tx_signature=request.tx_signature,
            tx_bytes_base58=request.tx_bytes_base58,
            runtime_proof_hash=request.runtime_proof_hash,
            user_id=request.user_id,
            runtime_id=request.runtime_id,
            timestamp=request.timestamp,
            mint_address=mint_address,
            mint_tx_id=mint_tx_id,
            compressed_tx_id=compressed_tx_id,
            chain=chain,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "txSignature": self.tx_signature,
            "txBytesBase58": self.tx_bytes_base58,
            "runtimeProofHash": self.runtime_proof_hash,
            "userId": self.user_id,
            "runtimeId": self.runtime_id,
            "timestamp": self.timestamp,
            "mint": self.mint_address,
            "mintTxId": self.mint_tx_id,
            "compressedTxId": self.compressed_tx_id,
            "chain": self.chain,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(slots=True)
class ProofOutcome:
    """Terminal result of one pipeline run."""
    ok: bool
    stage: PipelineStage
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    logs: Optional[list[str]] = None
    proof: Optional[AnchoredProof] = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, proof: AnchoredProof, metadata: dict[str, Any]) -> "ProofOutcome":
        return cls(ok=True, stage=PipelineStage.PERSISTED, proof=proof, metadata=metadata)

    @classmethod
    def failure(
        cls,
        error: ErrorCode,
        stage: PipelineStage,
        message: Optional[str] = None,
        logs: Optional[list[str]] = None,
        proof: Optional[AnchoredProof] = None,
    ) -> "ProofOutcome":
        return cls(ok=False, stage=stage, error=error, message=message, logs=logs, proof=proof)

    @property
    def http_status(self) -> int:
        if self.ok or self.error is None:
            return 200
        return ERROR_HTTP_STATUS.get(self.error, 500)

    def to_dict(self) -> dict[str, Any]:
        if self.ok and self.proof is not None:
            return {
                "ok": True,
                "mint": self.proof.mint_address,
                "mintTxId": self.proof.mint_tx_id,
                "compressedTxId": self.proof.compressed_tx_id,
                "metadata": self.metadata,
                "proof": self.proof.to_dict(),
            }

        result: dict[str, Any] = {"ok": False, "error": self.error.value if self.error else None}
        if self.message:
            result["message"] = self.message
        if self.logs:
            result["logs"] = self.logs
        # Ledger state exists even though the row does not; expose it for reconciliation.
        if self.error is ErrorCode.PERSIST_FAILED and self.proof is not None:
            result["mint"] = self.proof.mint_address
            result["mintTxId"] = self.proof.mint_tx_id
            result["compressedTxId"] = self.proof.compressed_tx_id
        return result
