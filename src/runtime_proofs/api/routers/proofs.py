"""Proof anchoring endpoints.

- POST /proofs/init: verify a runtime claim and anchor it on the ledger
- POST /proofs/retrieve: list a wallet's anchored proofs, newest first
"""
from __future__ import annotations

import json
import logging
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from runtime_proofs.models import ErrorCode, ProofRequest
from runtime_proofs.orchestrator import ProofPipeline
from runtime_proofs.store import RETRIEVE_LIMIT, ProofStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["proofs"])

REQUIRED_INIT_FIELDS = ("txSignature", "txBytesBase58", "runtimeProofHash", "timestamp", "userId")
MIN_WALLET_LENGTH = 20

# timestamp_ms is a BIGINT column
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

# Each value is written into the token metadata by its own UpdateField instruction.
MAX_ATTRIBUTE_LENGTH = 200


class InitProofBody(BaseModel):
    """Wire shape of POST /proofs/init."""
    model_config = ConfigDict(strict=True, extra="ignore")

    txSignature: str = Field(max_length=MAX_ATTRIBUTE_LENGTH)
    txBytesBase58: str
    runtimeProofHash: str = Field(max_length=MAX_ATTRIBUTE_LENGTH)
    timestamp: int = Field(ge=INT64_MIN, le=INT64_MAX)
    userId: str = Field(max_length=MAX_ATTRIBUTE_LENGTH)
    runtimeId: Optional[str] = Field(default=None, max_length=MAX_ATTRIBUTE_LENGTH)
    batchCount: Optional[int] = None

    def to_request(self) -> ProofRequest:
        return ProofRequest(
            tx_signature=self.txSignature,
            tx_bytes_base58=self.txBytesBase58,
            runtime_proof_hash=self.runtimeProofHash,
            timestamp=self.timestamp,
            user_id=self.userId,
            runtime_id=self.runtimeId,
            batch_count=self.batchCount,
        )


class ProofsDependencies:
    """Dependencies for proof routes.

    The pipeline is resolved per request so that retrieval keeps working
    when signing keys are not configured.
    """
    def __init__(self, pipeline: Callable[[], ProofPipeline], store: ProofStore):
        self.pipeline = pipeline
        self.store = store


def get_deps() -> ProofsDependencies:
    """Dependency injection placeholder."""
    raise NotImplementedError("Must be overridden")


def _error(code: str, status_code: int = 400, **extra: Any) -> JSONResponse:
    return JSONResponse({"ok": False, "error": code, **extra}, status_code=status_code)


def _internal(e: Exception) -> JSONResponse:
    return _error(ErrorCode.INTERNAL.value, 500, details=str(e))


async def _json_object(request: Request) -> Optional[dict[str, Any]]:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    return body if isinstance(body, dict) else None


@router.post("/init")
async def init_proof(request: Request, deps: ProofsDependencies = Depends(get_deps)):
    """Verify a runtime proof claim and anchor it as a compressed token."""
    body = await _json_object(request)
    if body is None:
        return _error(ErrorCode.INVALID_BODY.value)

    for name in REQUIRED_INIT_FIELDS:
        if body.get(name) is None:
            return _error(f"MISSING_{name}")

    try:
        proof_request = InitProofBody.model_validate(body).to_request()
    except ValidationError as e:
        return _error(
            ErrorCode.INVALID_BODY.value,
            message="; ".join(".".join(str(p) for p in err["loc"]) for err in e.errors()),
        )

    try:
        outcome = await deps.pipeline().run(proof_request)
    except Exception as e:
        logger.exception("Unexpected failure anchoring proof for %s", proof_request.tx_signature)
        return _internal(e)

    return JSONResponse(outcome.to_dict(), status_code=outcome.http_status)


@router.post("/retrieve")
async def retrieve_proofs(request: Request, deps: ProofsDependencies = Depends(get_deps)):
    """List stored proofs for a wallet."""
    body = await _json_object(request)
    wallet = body.get("wallet") if body else None
    if not isinstance(wallet, str) or len(wallet) < MIN_WALLET_LENGTH:
        return _error(ErrorCode.INVALID_WALLET.value)

    try:
        proofs = await deps.store.list_by_user(wallet, limit=RETRIEVE_LIMIT)
    except Exception as e:
        logger.exception("Failed to list proofs for %s", wallet)
        return _internal(e)

    return {"ok": True, "proofs": [proof.to_dict() for proof in proofs]}
