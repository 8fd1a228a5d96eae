"""HTTP surface for runtime proof anchoring."""
from runtime_proofs.api.main import create_app

__all__ = ["create_app"]
