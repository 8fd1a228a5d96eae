"""Light Protocol compressed-token support.

Covers what the anchoring pipeline needs from the compression programs:
- state tree discovery (explicit configuration or address lookup tables)
- token pool PDAs and their on-chain state
- create_token_pool and compress (transfer with is_compress) instructions
"""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from typing import Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .programs import SYSTEM_PROGRAM_ID, TOKEN_2022_PROGRAM_ID


COMPRESSED_TOKEN_PROGRAM_ID = Pubkey.from_string("cTokenmWW8bLPjZEBAUgYy3zKxQZW6VKi7bqNFEVv3m")
LIGHT_SYSTEM_PROGRAM_ID = Pubkey.from_string("SySTEM1eSU2p4BGQfQpimFEWWSC1XDFeun3Nqzz3rT7")
ACCOUNT_COMPRESSION_PROGRAM_ID = Pubkey.from_string("compr6CUsB5m2jS4Y3831ztGSTnDpnKJTKS95d64XVq")
NOOP_PROGRAM_ID = Pubkey.from_string("noopb9bkMVfRPU8AsbpTUg8AQkHtKwMYZiFUjNRtMmV")
REGISTERED_PROGRAM_PDA = Pubkey.from_string("35hkDgaAKwMCaxRz2ocSZ6NaUrtKkyNqU6c4RV3tYJRh")

POOL_SEED = b"pool"
CPI_AUTHORITY_SEED = b"cpi_authority"
MAX_TOKEN_POOLS = 5

# Address lookup table header precedes the packed 32-byte addresses.
LOOKUP_TABLE_META_SIZE = 56

# SPL token account: mint(32) | owner(32) | amount(u64)
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


def _anchor_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


CREATE_TOKEN_POOL_DISCRIMINATOR = _anchor_discriminator("create_token_pool")
TRANSFER_DISCRIMINATOR = _anchor_discriminator("transfer")


@dataclass(frozen=True)
class TreeInfo:
    """An active state tree that can receive compressed outputs."""
    tree: Pubkey
    queue: Pubkey
    cpi_context: Optional[Pubkey] = None
    tree_type: str = "state_v1"


@dataclass(frozen=True)
class TokenPoolInfo:
    """A compressed-token pool holding SPL balances for a mint."""
    mint: Pubkey
    token_pool_pda: Pubkey
    token_program: Pubkey
    pool_index: int
    is_initialized: bool
    balance: int = 0


def derive_cpi_authority_pda() -> Pubkey:
    address, _ = Pubkey.find_program_address([CPI_AUTHORITY_SEED], COMPRESSED_TOKEN_PROGRAM_ID)
    return address


def derive_account_compression_authority() -> Pubkey:
    address, _ = Pubkey.find_program_address([CPI_AUTHORITY_SEED], LIGHT_SYSTEM_PROGRAM_ID)
    return address


def derive_token_pool_pda(mint: Pubkey, pool_index: int = 0) -> Pubkey:
    seeds = [POOL_SEED, bytes(mint)]
    if pool_index > 0:
        seeds.append(bytes([pool_index]))
    address, _ = Pubkey.find_program_address(seeds, COMPRESSED_TOKEN_PROGRAM_ID)
    return address


def parse_token_account_amount(data: bytes) -> int:
    if len(data) < TOKEN_ACCOUNT_AMOUNT_OFFSET + 8:
        return 0
    (amount,) = struct.unpack_from("<Q", data, TOKEN_ACCOUNT_AMOUNT_OFFSET)
    return amount


def parse_lookup_table_addresses(data: bytes) -> list[Pubkey]:
    """Addresses stored in an address lookup table account."""
    body = data[LOOKUP_TABLE_META_SIZE:]
    return [Pubkey.from_bytes(body[i:i + 32]) for i in range(0, len(body) - len(body) % 32, 32)]


def tree_infos_from_lookup_tables(
    tree_table: Sequence[Pubkey],
    nullify_table: Sequence[Pubkey] = (),
) -> list[TreeInfo]:
    """Group (tree, queue, cpi_context) triples, dropping trees queued for nullification."""
    closed = set(nullify_table)
    infos: list[TreeInfo] = []
    for i in range(0, len(tree_table) - len(tree_table) % 3, 3):
        tree, queue, cpi_context = tree_table[i:i + 3]
        if tree in closed:
            continue
        infos.append(TreeInfo(tree=tree, queue=queue, cpi_context=cpi_context))
    return infos


def parse_tree_entry(entry: str) -> TreeInfo:
    """Parse a configured "tree:queue[:cpi_context]" entry."""
    parts = [p.strip() for p in entry.split(":")]
    if len(parts) not in (2, 3) or not all(parts):
        raise ValueError(f"Invalid state tree entry: {entry!r}")
    return TreeInfo(
        tree=Pubkey.from_string(parts[0]),
        queue=Pubkey.from_string(parts[1]),
        cpi_context=Pubkey.from_string(parts[2]) if len(parts) == 3 else None,
    )


def select_state_tree(trees: Sequence[TreeInfo]) -> Optional[TreeInfo]:
    """First active tree; no load balancing."""
    return trees[0] if trees else None


def select_token_pool(pools: Sequence[TokenPoolInfo]) -> Optional[TokenPoolInfo]:
    """First initialized pool in pool-index order."""
    for pool in sorted(pools, key=lambda p: p.pool_index):
        if pool.is_initialized:
            return pool
    return None


def create_token_pool(
    fee_payer: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        COMPRESSED_TOKEN_PROGRAM_ID,
        CREATE_TOKEN_POOL_DISCRIMINATOR,
        [
            AccountMeta(fee_payer, is_signer=True, is_writable=True),
            AccountMeta(derive_token_pool_pda(mint), is_signer=False, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=True),
            AccountMeta(token_program, is_signer=False, is_writable=False),
            AccountMeta(derive_cpi_authority_pda(), is_signer=False, is_writable=False),
        ],
    )


def encode_compress_data(mint: Pubkey, to_address: Pubkey, amount: int) -> bytes:
    """Borsh-encode CompressedTokenInstructionDataTransfer for a single compress output."""
    payload = b"\x00"  # proof: None
    payload += bytes(mint)
    payload += b"\x00"  # delegated_transfer: None
    payload += struct.pack("<I", 0)  # input_token_data_with_context: []
    payload += struct.pack("<I", 1)  # output_compressed_accounts
    payload += bytes(to_address)
    payload += struct.pack("<Q", amount)
    payload += b"\x00"  # lamports: None
    payload += struct.pack("<B", 0)  # merkle_tree_index
    payload += b"\x00"  # tlv: None
    payload += b"\x01"  # is_compress
    payload += b"\x01" + struct.pack("<Q", amount)  # compress_or_decompress_amount
    payload += b"\x00"  # cpi_context: None
    payload += b"\x00"  # lamports_change_account_merkle_tree_index: None
    return TRANSFER_DISCRIMINATOR + struct.pack("<I", len(payload)) + payload


def compress(
    *,
    payer: Pubkey,
    owner: Pubkey,
    source: Pubkey,
    to_address: Pubkey,
    mint: Pubkey,
    amount: int,
    tree: TreeInfo,
    pool: TokenPoolInfo,
) -> Instruction:
    """Move `amount` SPL units from `source` into a compressed account owned by `to_address`."""
    return Instruction(
        COMPRESSED_TOKEN_PROGRAM_ID,
        encode_compress_data(mint, to_address, amount),
        [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=False),
            AccountMeta(derive_cpi_authority_pda(), is_signer=False, is_writable=False),
            AccountMeta(LIGHT_SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(REGISTERED_PROGRAM_PDA, is_signer=False, is_writable=False),
            AccountMeta(NOOP_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(derive_account_compression_authority(), is_signer=False, is_writable=False),
            AccountMeta(ACCOUNT_COMPRESSION_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(COMPRESSED_TOKEN_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(pool.token_pool_pda, is_signer=False, is_writable=True),
            AccountMeta(source, is_signer=False, is_writable=True),
            AccountMeta(pool.token_program, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            # remaining accounts: output state tree (merkle_tree_index 0)
            AccountMeta(tree.tree, is_signer=False, is_writable=True),
        ],
    )
