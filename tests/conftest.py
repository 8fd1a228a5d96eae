"""
Pytest configuration for runtime proof tests.

FakeLedger stands in for the Solana gateway: it classifies each submission
by the program of its first instruction and applies the side effects the
pipeline relies on (pools appear, holding accounts appear).
"""
from __future__ import annotations

import asyncio
import os
from typing import Any, Optional, Sequence

import base58
import pytest
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from runtime_proofs.executor import MintAndCompressExecutor
from runtime_proofs.hashing import compute_runtime_proof_hash
from runtime_proofs.models import ProofRequest
from runtime_proofs.orchestrator import ProofPipeline
from runtime_proofs.provisioner import TokenInfrastructureProvisioner
from runtime_proofs.solana.compression import (
    COMPRESSED_TOKEN_PROGRAM_ID,
    TokenPoolInfo,
    TreeInfo,
    derive_token_pool_pda,
)
from runtime_proofs.solana.programs import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    MEMO_PROGRAM_ID,
    METADATA_UPDATE_FIELD_DISCRIMINATOR,
    SYSTEM_PROGRAM_ID,
    TOKEN_2022_PROGRAM_ID,
)
from runtime_proofs.store import InMemoryProofStore

# Keep settings from a developer's .env out of the tests
os.environ.setdefault("DATABASE_URL", "memory://")
os.environ.setdefault("LOG_JSON", "false")

KNOWN_TX_SIGNATURE = "5VERv8NMvzbJMEkV8xnrLkEaWRtSz9CosKDYjCJjBRnbJLgp8uirBgmQpjKhoR4tjF3ZpRzrFmBV6UjKdiSZkQUW"
TX_BYTES = bytes(range(1, 65))
TIMESTAMP_MS = 1_700_000_000_000
RUNTIME_ID = "runtime-7"
USER_ID = "7xKXtg2CW87d97TXJSDpbD5jBkheTqA83TZRuJosgAsU"

_PROGRAM_KINDS = {
    SYSTEM_PROGRAM_ID: "create_mint",
    COMPRESSED_TOKEN_PROGRAM_ID: "create_pool",
    MEMO_PROGRAM_ID: "memo",
    ASSOCIATED_TOKEN_PROGRAM_ID: "prepare",
    TOKEN_2022_PROGRAM_ID: "mint_to",
}


class FakeLedger:
    """In-memory LedgerGateway."""

    def __init__(self) -> None:
        self.transactions: dict[str, dict[str, Any]] = {}
        self.trees: list[TreeInfo] = [
            TreeInfo(tree=Keypair().pubkey(), queue=Keypair().pubkey(), cpi_context=Keypair().pubkey())
        ]
        self.pools: dict[str, list[TokenPoolInfo]] = {}
        self.accounts: set[str] = set()
        self.failures: dict[str, Exception] = {}
        self.submissions: list[tuple[str, list[Instruction], list[Keypair]]] = []
        self.compressions: list[dict[str, Any]] = []
        self.pool_appears_on_failure = False
        self.memo_delay = 0.0
        self._counter = 0

    def _signature(self, kind: str) -> str:
        self._counter += 1
        return f"sig-{kind}-{self._counter}"

    def kinds(self) -> list[str]:
        return [kind for kind, _, _ in self.submissions]

    def add_pool(self, mint: Pubkey, pool_index: int = 0, is_initialized: bool = True) -> TokenPoolInfo:
        pool = TokenPoolInfo(
            mint=mint,
            token_pool_pda=derive_token_pool_pda(mint, pool_index),
            token_program=TOKEN_2022_PROGRAM_ID,
            pool_index=pool_index,
            is_initialized=is_initialized,
        )
        self.pools.setdefault(str(mint), []).append(pool)
        return pool

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        return self.transactions.get(signature)

    async def get_state_tree_infos(self) -> list[TreeInfo]:
        if "trees" in self.failures:
            raise self.failures["trees"]
        return list(self.trees)

    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        return 1_000_000 + data_size

    async def get_latest_blockhash(self) -> str:
        return "EtWTRABZaYq6iMfeYKouRu166VU2xqa1wcaWoxPkrZBG"

    async def account_exists(self, address: Pubkey) -> bool:
        return str(address) in self.accounts

    async def send_and_confirm(self, instructions: Sequence[Instruction], signers: Sequence[Keypair]) -> str:
        kind = _PROGRAM_KINDS.get(instructions[0].program_id, "unknown")
        if bytes(instructions[0].data).startswith(METADATA_UPDATE_FIELD_DISCRIMINATOR):
            kind = "metadata"
        self.submissions.append((kind, list(instructions), list(signers)))

        if kind == "memo" and self.memo_delay:
            await asyncio.sleep(self.memo_delay)

        if kind in self.failures:
            if kind == "create_pool" and self.pool_appears_on_failure:
                self.add_pool(instructions[0].accounts[3].pubkey)
            raise self.failures[kind]

        if kind == "create_pool":
            self.add_pool(instructions[0].accounts[3].pubkey)
        elif kind == "prepare":
            self.accounts.add(str(instructions[0].accounts[1].pubkey))
        return self._signature(kind)

    async def get_token_pool_infos(self, mint: Pubkey) -> list[TokenPoolInfo]:
        if "pool_query" in self.failures:
            raise self.failures["pool_query"]
        return list(self.pools.get(str(mint), []))

    async def compress(self, **kwargs: Any) -> str:
        self.compressions.append(kwargs)
        if "compress" in self.failures:
            raise self.failures["compress"]
        return self._signature("compress")


def make_request(**overrides: Any) -> ProofRequest:
    """A request whose claimed fingerprint matches its transaction bytes."""
    timestamp = overrides.pop("timestamp", TIMESTAMP_MS)
    runtime_id = overrides.pop("runtime_id", RUNTIME_ID)
    tx_bytes = overrides.pop("tx_bytes", TX_BYTES)
    fields = {
        "tx_signature": KNOWN_TX_SIGNATURE,
        "tx_bytes_base58": base58.b58encode(tx_bytes).decode(),
        "runtime_proof_hash": compute_runtime_proof_hash(tx_bytes, timestamp, runtime_id),
        "timestamp": timestamp,
        "user_id": USER_ID,
        "runtime_id": runtime_id,
    }
    fields.update(overrides)
    return ProofRequest(**fields)


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def ledger() -> FakeLedger:
    fake = FakeLedger()
    fake.transactions[KNOWN_TX_SIGNATURE] = {"slot": 1, "meta": {"err": None, "logMessages": []}}
    return fake


@pytest.fixture
def store() -> InMemoryProofStore:
    return InMemoryProofStore()


@pytest.fixture
def proof_request() -> ProofRequest:
    return make_request()


@pytest.fixture
def provisioner(ledger: FakeLedger, payer: Keypair) -> TokenInfrastructureProvisioner:
    return TokenInfrastructureProvisioner(ledger, payer)


@pytest.fixture
def executor(ledger: FakeLedger, payer: Keypair) -> MintAndCompressExecutor:
    return MintAndCompressExecutor(ledger, payer, memo_timeout=0.2)


@pytest.fixture
def pipeline(ledger, store, provisioner, executor) -> ProofPipeline:
    return ProofPipeline(ledger=ledger, store=store, provisioner=provisioner, executor=executor)
