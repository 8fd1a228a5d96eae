"""Configuration surface for the runtime proof service."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Literal

import base58
from pydantic import field_validator
from pydantic_settings import BaseSettings
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import ConfigurationError


class RuntimeProofSettings(BaseSettings):
    """Service configuration, read from the environment and `.env`."""

    # Environment
    environment: Literal["dev", "sandbox", "prod"] = "dev"

    # Solana RPC
    solana_rpc: str = "http://127.0.0.1:8899"
    commitment: Literal["processed", "confirmed", "finalized"] = "confirmed"
    rpc_timeout_seconds: float = 30.0
    confirm_timeout_seconds: float = 60.0
    confirm_poll_interval_seconds: float = 0.5

    # Keys (base58-encoded 64-byte secret keys)
    payer_secret_base58: str = ""
    master_mint_pubkey: str = ""
    master_mint_authority_secret_base58: str = ""

    # Light Protocol state trees: either explicit "tree:queue[:cpi_context]"
    # entries or the on-chain lookup tables that list them.
    state_trees: str = ""
    state_tree_lookup_table: str = ""
    nullify_lookup_table: str = ""

    # Token metadata
    proof_uri_base: str = "https://shardvell.com/proof/"

    # Best-effort memo
    memo_timeout_seconds: float = 10.0

    # Database - "memory://" selects the in-process store
    database_url: str = "memory://"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_prefix = ""
        env_file = ".env"
        extra = "ignore"

    @field_validator("database_url", mode="before")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Convert postgres:// to postgresql:// (Heroku/Railway style)."""
        if not v:
            return "memory://"
        if v.startswith("postgres://"):
            return v.replace("postgres://", "postgresql://", 1)
        return v

    @property
    def state_tree_entries(self) -> List[str]:
        """Comma-separated STATE_TREES split into entries."""
        return [t.strip() for t in self.state_trees.split(",") if t.strip()]

    @property
    def uses_postgres(self) -> bool:
        return self.database_url.startswith("postgresql://")

    @property
    def master_mint(self) -> Pubkey | None:
        if not self.master_mint_pubkey:
            return None
        try:
            return Pubkey.from_string(self.master_mint_pubkey)
        except ValueError as e:
            raise ConfigurationError(f"MASTER_MINT_PUBKEY is not a valid public key: {e}") from e


def load_keypair(secret_base58: str, name: str) -> Keypair:
    """Decode a base58 secret key; raises ConfigurationError when absent or malformed."""
    if not secret_base58:
        raise ConfigurationError(f"{name} missing")
    try:
        return Keypair.from_bytes(base58.b58decode(secret_base58))
    except ValueError as e:
        raise ConfigurationError(f"{name} is not a valid base58 secret key") from e


def load_optional_keypair(secret_base58: str, name: str) -> Keypair | None:
    if not secret_base58:
        return None
    return load_keypair(secret_base58, name)


@lru_cache
def load_settings(env_file: str | None = None) -> RuntimeProofSettings:
    """Load settings once per process to keep services consistent."""
    if env_file:
        return RuntimeProofSettings(_env_file=Path(env_file))
    return RuntimeProofSettings()
