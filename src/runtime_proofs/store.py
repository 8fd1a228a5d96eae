"""Durable storage of anchored proofs.

One append-only table, keyed by transaction signature and queried by user.
`tx_signature` is intentionally not unique: a retried request that succeeds
twice produces two rows.
"""
from __future__ import annotations

import itertools
import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from .exceptions import ProofStoreError
from .models import AnchoredProof

logger = logging.getLogger(__name__)

RETRIEVE_LIMIT = 200

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS runtime_proofs (
    id SERIAL PRIMARY KEY,
    tx_signature TEXT NOT NULL,
    tx_bytes_base58 TEXT NOT NULL,
    runtime_proof_hash TEXT NOT NULL,
    user_id TEXT NOT NULL,
    runtime_id TEXT,
    timestamp_ms BIGINT NOT NULL,
    mint_address TEXT NOT NULL,
    mint_tx_id TEXT NOT NULL,
    compressed_tx_id TEXT NOT NULL,
    chain TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS idx_runtime_proofs_user ON runtime_proofs(user_id);
CREATE INDEX IF NOT EXISTS idx_runtime_proofs_tx ON runtime_proofs(tx_signature);
"""

INSERT_SQL = """
INSERT INTO runtime_proofs (
    tx_signature, tx_bytes_base58, runtime_proof_hash, user_id, runtime_id, timestamp_ms,
    mint_address, mint_tx_id, compressed_tx_id, chain
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
RETURNING id, created_at
"""

SELECT_BY_USER_SQL = """
SELECT id, tx_signature, tx_bytes_base58, runtime_proof_hash, user_id, runtime_id,
       timestamp_ms, mint_address, mint_tx_id, compressed_tx_id, chain, created_at
FROM runtime_proofs
WHERE user_id = $1
ORDER BY created_at DESC, id DESC
LIMIT $2
"""


class ProofStore(Protocol):
    async def save(self, proof: AnchoredProof) -> AnchoredProof: ...
    async def list_by_user(self, user_id: str, limit: int = RETRIEVE_LIMIT) -> list[AnchoredProof]: ...
    async def close(self) -> None: ...


def proof_from_row(row: Any) -> AnchoredProof:
    return AnchoredProof(
        id=row["id"],
        tx_signature=row["tx_signature"],
        tx_bytes_base58=row["tx_bytes_base58"],
        runtime_proof_hash=row["runtime_proof_hash"],
        user_id=row["user_id"],
        runtime_id=row["runtime_id"],
        timestamp=int(row["timestamp_ms"]),
        mint_address=row["mint_address"],
        mint_tx_id=row["mint_tx_id"],
        compressed_tx_id=row["compressed_tx_id"],
        chain=row["chain"],
        created_at=row["created_at"],
    )


class PostgresProofStore:
    """PostgreSQL proof store (asyncpg).

    The schema is created on first use with CREATE ... IF NOT EXISTS, so a
    fresh database needs no migration step.
    """

    def __init__(self, dsn: str, *, min_size: int = 1, max_size: int = 5):
        self._dsn = dsn
        self._min_size = min_size
        self._max_size = max_size
        self._pool = None
        self._schema_ready = False

    async def _get_pool(self):
        if self._pool is None:
            import asyncpg
            dsn = self._dsn
            if dsn.startswith("postgres://"):
                dsn = dsn.replace("postgres://", "postgresql://", 1)
            self._pool = await asyncpg.create_pool(
                dsn, min_size=self._min_size, max_size=self._max_size, command_timeout=60
            )
        return self._pool

    async def _ensure_schema(self, conn) -> None:
        if not self._schema_ready:
            await conn.execute(SCHEMA_SQL)
            self._schema_ready = True

    async def save(self, proof: AnchoredProof) -> AnchoredProof:
        import asyncpg

        try:
            pool = await self._get_pool()
            async with pool.acquire() as conn:
                await self._ensure_schema(conn)
                row = await conn.fetchrow(
                    INSERT_SQL,
                    proof.tx_signature,
                    proof.tx_bytes_base58,
                    proof.runtime_proof_hash,
                    proof.user_id,
                    proof.runtime_id,
                    proof.timestamp,
                    proof.mint_address,
                    proof.mint_tx_id,
                    proof.compressed_tx_id,
                    proof.chain,
                )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
            raise ProofStoreError(f"Failed to persist proof for {proof.tx_signature}: {e}") from e

        proof.id = row["id"]
        proof.created_at = row["created_at"]
        return proof

    async def list_by_user(self, user_id: str, limit: int = RETRIEVE_LIMIT) -> list[AnchoredProof]:
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            await self._ensure_schema(conn)
            rows = await conn.fetch(SELECT_BY_USER_SQL, user_id, min(limit, RETRIEVE_LIMIT))
        return [proof_from_row(row) for row in rows]

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


class InMemoryProofStore:
    """In-memory proof store (swap for PostgreSQL in production)."""

    def __init__(self) -> None:
        self._rows: list[AnchoredProof] = []
        self._ids = itertools.count(1)

    async def save(self, proof: AnchoredProof) -> AnchoredProof:
        proof.id = next(self._ids)
        proof.created_at = proof.created_at or datetime.now(timezone.utc)
        self._rows.append(proof)
        return proof

    async def list_by_user(self, user_id: str, limit: int = RETRIEVE_LIMIT) -> list[AnchoredProof]:
        rows = [p for p in self._rows if p.user_id == user_id]
        rows.sort(key=lambda p: (p.created_at, p.id), reverse=True)
        return rows[: min(limit, RETRIEVE_LIMIT)]

    async def close(self) -> None:
        return None


def create_proof_store(database_url: str) -> ProofStore:
    """PostgreSQL for postgres DSNs, in-memory otherwise."""
    if database_url.startswith(("postgresql://", "postgres://")):
        logger.info("Using PostgreSQL proof store")
        return PostgresProofStore(database_url)
    logger.info("Using in-memory proof store")
    return InMemoryProofStore()
