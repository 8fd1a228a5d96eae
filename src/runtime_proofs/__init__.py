"""Runtime proof anchoring: verify runtime claims and anchor them as compressed tokens on Solana."""

__version__ = "0.1.0"

from runtime_proofs.config import RuntimeProofSettings, load_settings
from runtime_proofs.exceptions import (
    ConfigurationError,
    LedgerError,
    ProofStepError,
    RuntimeProofError,
)
from runtime_proofs.hashing import compute_runtime_proof_hash, verify_runtime_proof_hash
from runtime_proofs.models import AnchoredProof, ErrorCode, PipelineStage, ProofOutcome, ProofRequest
from runtime_proofs.orchestrator import ProofPipeline, build_pipeline

__all__ = [
    "__version__",
    "RuntimeProofSettings",
    "load_settings",
    "ConfigurationError",
    "LedgerError",
    "ProofStepError",
    "RuntimeProofError",
    "compute_runtime_proof_hash",
    "verify_runtime_proof_hash",
    "AnchoredProof",
    "ErrorCode",
    "PipelineStage",
    "ProofOutcome",
    "ProofRequest",
    "ProofPipeline",
    "build_pipeline",
]
