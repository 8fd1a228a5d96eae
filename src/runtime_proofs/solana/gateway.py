"""Ledger gateway: the operations the anchoring pipeline consumes from Solana."""
from __future__ import annotations

import base64
import logging
from typing import Any, Optional, Protocol, Sequence

from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from ..exceptions import LedgerError, LedgerTransactionError
from .client import SolanaClient
from .compression import (
    MAX_TOKEN_POOLS,
    TokenPoolInfo,
    TreeInfo,
    compress,
    derive_token_pool_pda,
    parse_lookup_table_addresses,
    parse_token_account_amount,
    parse_tree_entry,
    tree_infos_from_lookup_tables,
)
from .programs import TOKEN_2022_PROGRAM_ID

logger = logging.getLogger(__name__)

TOKEN_PROGRAM_IDS = frozenset({
    str(TOKEN_2022_PROGRAM_ID),
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
})

# Largest serialized transaction a validator accepts.
PACKET_DATA_SIZE = 1232


def transaction_size(instructions: Sequence[Instruction], payer: Pubkey) -> int:
    """Serialized size of the signed v0 transaction carrying `instructions`."""
    message = MessageV0.try_compile(payer, list(instructions), [], Hash.default())
    signatures = [Signature.default()] * message.header.num_required_signatures
    return len(bytes(VersionedTransaction.populate(message, signatures)))


def pack_instructions(
    instructions: Sequence[Instruction],
    payer: Pubkey,
    *,
    head: Sequence[Instruction] = (),
    limit: int = PACKET_DATA_SIZE,
) -> list[list[Instruction]]:
    """Split instructions into in-order batches that each fit one transaction.

    `head` always opens the first batch and is never split.
    """
    batches: list[list[Instruction]] = []
    current = list(head)
    for ix in instructions:
        if current and transaction_size([*current, ix], payer) > limit:
            batches.append(current)
            current = []
        current.append(ix)
    if current:
        batches.append(current)
    return batches


class LedgerGateway(Protocol):
    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]: ...
    async def get_state_tree_infos(self) -> list[TreeInfo]: ...
    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int: ...
    async def get_latest_blockhash(self) -> str: ...
    async def account_exists(self, address: Pubkey) -> bool: ...
    async def send_and_confirm(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str: ...
    async def get_token_pool_infos(self, mint: Pubkey) -> list[TokenPoolInfo]: ...
    async def compress(
        self,
        *,
        payer: Keypair,
        owner: Keypair,
        mint: Pubkey,
        amount: int,
        source: Pubkey,
        to_address: Pubkey,
        tree: TreeInfo,
        pool: TokenPoolInfo,
    ) -> str: ...


class SolanaLedger:
    """LedgerGateway backed by a Solana JSON-RPC node.

    Transactions are compiled as v0 messages, signed locally with the
    provided keypairs, submitted with preflight, and then polled until they
    reach the client's commitment or the confirmation wait runs out.
    """

    def __init__(
        self,
        client: SolanaClient,
        *,
        state_trees: Sequence[str] = (),
        state_tree_lookup_table: str = "",
        nullify_lookup_table: str = "",
    ) -> None:
        self.client = client
        self._static_trees = [parse_tree_entry(entry) for entry in state_trees]
        self._tree_table = state_tree_lookup_table
        self._nullify_table = nullify_lookup_table

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        return await self.client.get_transaction(signature)

    async def get_state_tree_infos(self) -> list[TreeInfo]:
        if self._static_trees:
            return list(self._static_trees)
        if not self._tree_table:
            return []

        tree_account = await self.client.get_account_info(self._tree_table)
        if tree_account is None:
            raise LedgerError(f"State tree lookup table {self._tree_table} not found")
        trees = parse_lookup_table_addresses(tree_account.data)

        nullified: list[Pubkey] = []
        if self._nullify_table:
            nullify_account = await self.client.get_account_info(self._nullify_table)
            if nullify_account is not None:
                nullified = parse_lookup_table_addresses(nullify_account.data)

        return tree_infos_from_lookup_tables(trees, nullified)

    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        return await self.client.get_minimum_balance_for_rent_exemption(data_size)

    async def get_latest_blockhash(self) -> str:
        return await self.client.get_latest_blockhash()

    async def account_exists(self, address: Pubkey) -> bool:
        return await self.client.get_account_info(str(address)) is not None

    async def send_and_confirm(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str:
        """Sign with `signers` (first one pays fees), submit, and wait for confirmation."""
        unique: dict[Pubkey, Keypair] = {}
        for signer in signers:
            unique.setdefault(signer.pubkey(), signer)
        payer = signers[0]

        blockhash = await self.client.get_latest_blockhash()
        message = MessageV0.try_compile(
            payer.pubkey(),
            list(instructions),
            [],
            Hash.from_string(blockhash),
        )
        tx = VersionedTransaction(message, list(unique.values()))
        raw = bytes(tx)
        if len(raw) > PACKET_DATA_SIZE:
            raise LedgerTransactionError(
                f"Transaction too large: {len(raw)} bytes exceeds {PACKET_DATA_SIZE}"
            )
        signature = await self.client.send_raw_transaction(
            base64.b64encode(raw).decode("ascii")
        )
        await self.client.wait_for_confirmation(signature)
        return signature

    async def get_token_pool_infos(self, mint: Pubkey) -> list[TokenPoolInfo]:
        pdas = [derive_token_pool_pda(mint, index) for index in range(MAX_TOKEN_POOLS)]
        accounts = await self.client.get_multiple_accounts([str(pda) for pda in pdas])

        infos: list[TokenPoolInfo] = []
        for index, (pda, account) in enumerate(zip(pdas, accounts)):
            if account is None:
                continue
            infos.append(
                TokenPoolInfo(
                    mint=mint,
                    token_pool_pda=pda,
                    token_program=Pubkey.from_string(account.owner),
                    pool_index=index,
                    is_initialized=account.owner in TOKEN_PROGRAM_IDS,
                    balance=parse_token_account_amount(account.data),
                )
            )
        return infos

    async def compress(
        self,
        *,
        payer: Keypair,
        owner: Keypair,
        mint: Pubkey,
        amount: int,
        source: Pubkey,
        to_address: Pubkey,
        tree: TreeInfo,
        pool: TokenPoolInfo,
    ) -> str:
        ix = compress(
            payer=payer.pubkey(),
            owner=owner.pubkey(),
            source=source,
            to_address=to_address,
            mint=mint,
            amount=amount,
            tree=tree,
            pool=pool,
        )
        return await self.send_and_confirm([ix], [payer, owner])

    async def close(self) -> None:
        await self.client.close()
