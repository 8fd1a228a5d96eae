"""Solana integration for runtime proof anchoring."""
from runtime_proofs.solana.client import SolanaClient, SolanaConfig
from runtime_proofs.solana.compression import TokenPoolInfo, TreeInfo
from runtime_proofs.solana.gateway import LedgerGateway, SolanaLedger

__all__ = [
    "SolanaClient",
    "SolanaConfig",
    "TokenPoolInfo",
    "TreeInfo",
    "LedgerGateway",
    "SolanaLedger",
]
