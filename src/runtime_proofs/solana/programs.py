"""Instruction builders for Token-2022, token metadata, ATA and memo programs."""
from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from typing import Optional, Sequence

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import CreateAccountParams, create_account

# Solana program IDs
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")
SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
MEMO_PROGRAM_ID = Pubkey.from_string("MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr")
SYSVAR_RENT_PUBKEY = Pubkey.from_string("SysvarRent111111111111111111111111111111111")

# Token-2022 layout sizes
ACCOUNT_SIZE = 165
ACCOUNT_TYPE_SIZE = 1
TYPE_SIZE = 2
LENGTH_SIZE = 2
METADATA_POINTER_SIZE = 64
MINT_WITH_METADATA_POINTER_LEN = (
    ACCOUNT_SIZE + ACCOUNT_TYPE_SIZE + TYPE_SIZE + LENGTH_SIZE + METADATA_POINTER_SIZE
)

# Token instruction tags
INITIALIZE_MINT = 0
MINT_TO = 7
METADATA_POINTER_EXTENSION = 39
METADATA_POINTER_INITIALIZE = 0

# Token metadata interface Field::Key variant
FIELD_KEY = 3


def _interface_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"spl_token_metadata_interface:{name}".encode()).digest()[:8]


METADATA_INITIALIZE_DISCRIMINATOR = _interface_discriminator("initialize_account")
METADATA_UPDATE_FIELD_DISCRIMINATOR = _interface_discriminator("updating_field")


def borsh_string(value: str) -> bytes:
    encoded = value.encode("utf-8")
    return struct.pack("<I", len(encoded)) + encoded


@dataclass
class ProofTokenMetadata:
    """Token-2022 metadata carried by a runtime proof mint."""
    mint: Pubkey
    update_authority: Pubkey
    name: str
    symbol: str
    uri: str
    additional_metadata: list[tuple[str, str]] = field(default_factory=list)

    def pack(self) -> bytes:
        """Borsh layout stored in the mint's metadata TLV entry."""
        out = bytes(self.update_authority) + bytes(self.mint)
        out += borsh_string(self.name) + borsh_string(self.symbol) + borsh_string(self.uri)
        out += struct.pack("<I", len(self.additional_metadata))
        for key, value in self.additional_metadata:
            out += borsh_string(key) + borsh_string(value)
        return out

    @property
    def tlv_len(self) -> int:
        return TYPE_SIZE + LENGTH_SIZE + len(self.pack())


def get_associated_token_address(
    owner: Pubkey, mint: Pubkey, token_program: Pubkey = TOKEN_2022_PROGRAM_ID
) -> Pubkey:
    """Derive the owner's associated token account for a mint."""
    address, _ = Pubkey.find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)],
        ASSOCIATED_TOKEN_PROGRAM_ID,
    )
    return address


def create_mint_account(
    payer: Pubkey, mint: Pubkey, lamports: int, space: int = MINT_WITH_METADATA_POINTER_LEN
) -> Instruction:
    return create_account(
        CreateAccountParams(
            from_pubkey=payer,
            to_pubkey=mint,
            lamports=lamports,
            space=space,
            owner=TOKEN_2022_PROGRAM_ID,
        )
    )


def initialize_metadata_pointer(
    mint: Pubkey, authority: Optional[Pubkey], metadata_address: Pubkey
) -> Instruction:
    data = struct.pack("<BB", METADATA_POINTER_EXTENSION, METADATA_POINTER_INITIALIZE)
    data += bytes(authority) if authority else bytes(32)
    data += bytes(metadata_address)
    return Instruction(
        TOKEN_2022_PROGRAM_ID,
        data,
        [AccountMeta(mint, is_signer=False, is_writable=True)],
    )


def initialize_mint(
    mint: Pubkey,
    decimals: int,
    mint_authority: Pubkey,
    freeze_authority: Optional[Pubkey] = None,
) -> Instruction:
    data = struct.pack(
        "<BB32sB32s",
        INITIALIZE_MINT,
        decimals,
        bytes(mint_authority),
        1 if freeze_authority else 0,
        bytes(freeze_authority) if freeze_authority else bytes(32),
    )
    return Instruction(
        TOKEN_2022_PROGRAM_ID,
        data,
        [
            AccountMeta(mint, is_signer=False, is_writable=True),
            AccountMeta(SYSVAR_RENT_PUBKEY, is_signer=False, is_writable=False),
        ],
    )


def initialize_token_metadata(
    metadata: ProofTokenMetadata, mint_authority: Pubkey
) -> Instruction:
    data = METADATA_INITIALIZE_DISCRIMINATOR
    data += borsh_string(metadata.name) + borsh_string(metadata.symbol) + borsh_string(metadata.uri)
    return Instruction(
        TOKEN_2022_PROGRAM_ID,
        data,
        [
            AccountMeta(metadata.mint, is_signer=False, is_writable=True),
            AccountMeta(metadata.update_authority, is_signer=False, is_writable=False),
            AccountMeta(metadata.mint, is_signer=False, is_writable=False),
            AccountMeta(mint_authority, is_signer=True, is_writable=False),
        ],
    )


def update_token_metadata_field(
    mint: Pubkey, update_authority: Pubkey, key: str, value: str
) -> Instruction:
    data = METADATA_UPDATE_FIELD_DISCRIMINATOR
    data += struct.pack("<B", FIELD_KEY) + borsh_string(key) + borsh_string(value)
    return Instruction(
        TOKEN_2022_PROGRAM_ID,
        data,
        [
            AccountMeta(mint, is_signer=False, is_writable=True),
            AccountMeta(update_authority, is_signer=True, is_writable=False),
        ],
    )


def create_associated_token_account(
    payer: Pubkey,
    associated_token: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Instruction:
    # Empty data selects the non-idempotent Create, which rejects an existing account.
    return Instruction(
        ASSOCIATED_TOKEN_PROGRAM_ID,
        b"",
        [
            AccountMeta(payer, is_signer=True, is_writable=True),
            AccountMeta(associated_token, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=False, is_writable=False),
            AccountMeta(mint, is_signer=False, is_writable=False),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
            AccountMeta(token_program, is_signer=False, is_writable=False),
        ],
    )


def mint_to(
    mint: Pubkey,
    destination: Pubkey,
    authority: Pubkey,
    amount: int,
    token_program: Pubkey = TOKEN_2022_PROGRAM_ID,
) -> Instruction:
    return Instruction(
        token_program,
        struct.pack("<BQ", MINT_TO, amount),
        [
            AccountMeta(mint, is_signer=False, is_writable=True),
            AccountMeta(destination, is_signer=False, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=False),
        ],
    )


def memo(text: str, signers: Sequence[Pubkey] = ()) -> Instruction:
    return Instruction(
        MEMO_PROGRAM_ID,
        text.encode("utf-8"),
        [AccountMeta(s, is_signer=True, is_writable=False) for s in signers],
    )
