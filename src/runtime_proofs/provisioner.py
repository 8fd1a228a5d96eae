"""Token infrastructure provisioning: mint, compression pool, holding account.

Existence is always discovered by querying the ledger, never remembered
between requests, so restarts and concurrent instances see the same state.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import LedgerError, ProofStepError, ledger_logs
from .models import CHAIN, ErrorCode, ProofRequest
from .solana import programs
from .solana.compression import TokenPoolInfo, create_token_pool, select_token_pool
from .solana.gateway import LedgerGateway, pack_instructions

logger = logging.getLogger(__name__)

TOKEN_NAME = "RuntimeProof"
TOKEN_SYMBOL = "RTPRF"
TOKEN_DECIMALS = 0
DEFAULT_PROOF_URI_BASE = "https://shardvell.com/proof/"

# Ledger rejections that mean "the holding account is already there".
BENIGN_CONFLICT_SIGNATURES: tuple[re.Pattern[str], ...] = (
    re.compile(r"already in use", re.IGNORECASE),
    re.compile(r"custom program error: 0x0\b", re.IGNORECASE),
    re.compile(r"account already initialized", re.IGNORECASE),
)


def is_benign_conflict(logs: Optional[Sequence[str]]) -> bool:
    """True only when the diagnostics match a recognized already-exists signature."""
    if not logs:
        return False
    joined = "\n".join(logs)
    return any(pattern.search(joined) for pattern in BENIGN_CONFLICT_SIGNATURES)


@dataclass(frozen=True)
class MintHandle:
    address: Pubkey
    authority: Keypair
    mint_tx_id: str = ""
    created: bool = False


@dataclass(frozen=True)
class HoldingAccount:
    address: Pubkey
    owner: Pubkey
    mint: Pubkey
    created: bool = False


class TokenInfrastructureProvisioner:
    """Ensures the mint, its compression pool and the payer's holding account exist."""

    def __init__(
        self,
        ledger: LedgerGateway,
        payer: Keypair,
        *,
        master_mint: Optional[Pubkey] = None,
        master_mint_authority: Optional[Keypair] = None,
        proof_uri_base: str = DEFAULT_PROOF_URI_BASE,
        chain: str = CHAIN,
    ) -> None:
        self._ledger = ledger
        self._payer = payer
        self._master_mint = master_mint
        self._master_mint_authority = master_mint_authority
        self._proof_uri_base = proof_uri_base
        self._chain = chain

    @property
    def payer(self) -> Keypair:
        return self._payer

    def check_mint_authority(self) -> None:
        """Fail fast when a master mint is configured without its authority key."""
        if self._master_mint is not None and self._master_mint_authority is None:
            raise ProofStepError(
                ErrorCode.MINT_AUTHORITY_MISSING,
                "MASTER_MINT_AUTHORITY_SECRET_BASE58 missing for configured master mint",
            )

    async def ensure_mint(self, request: ProofRequest) -> MintHandle:
        """Adopt the configured master mint, or create a fresh mint with proof metadata."""
        self.check_mint_authority()
        if self._master_mint is not None:
            logger.info("Reusing master mint %s", self._master_mint)
            return MintHandle(address=self._master_mint, authority=self._master_mint_authority)

        return await self._create_mint(request)

    async def _create_mint(self, request: ProofRequest) -> MintHandle:
        mint = Keypair()
        payer = self._payer.pubkey()
        metadata = programs.ProofTokenMetadata(
            mint=mint.pubkey(),
            update_authority=payer,
            name=TOKEN_NAME,
            symbol=TOKEN_SYMBOL,
            uri=f"{self._proof_uri_base}{mint.pubkey()}",
            additional_metadata=request.attributes(self._chain),
        )

        try:
            # Rent is funded for the final size including every attribute.
            lamports = await self._ledger.get_minimum_balance_for_rent_exemption(
                programs.MINT_WITH_METADATA_POINTER_LEN + metadata.tlv_len
            )
            creation = [
                programs.create_mint_account(payer, mint.pubkey(), lamports),
                programs.initialize_metadata_pointer(mint.pubkey(), payer, mint.pubkey()),
                programs.initialize_mint(mint.pubkey(), TOKEN_DECIMALS, payer),
                programs.initialize_token_metadata(metadata, payer),
            ]
            fields = [
                programs.update_token_metadata_field(mint.pubkey(), payer, key, value)
                for key, value in metadata.additional_metadata
            ]
            first, *rest = pack_instructions(fields, payer, head=creation)
            signature = await self._ledger.send_and_confirm(first, [self._payer, mint])
            for batch in rest:
                await self._ledger.send_and_confirm(batch, [self._payer])
        except LedgerError as e:
            logger.error(
                "Mint creation failed for %s: %s",
                mint.pubkey(),
                e,
                extra={"error_code": e.error_code, **e.details},
            )
            raise ProofStepError(ErrorCode.MINT_TX_FAILED, str(e), logs=ledger_logs(e)) from e

        logger.info(
            "Created mint %s",
            mint.pubkey(),
            extra={"mint": str(mint.pubkey()), "mint_tx_id": signature, "metadata_txs": len(rest)},
        )
        return MintHandle(address=mint.pubkey(), authority=self._payer, mint_tx_id=signature, created=True)

    async def ensure_pool(self, mint: Pubkey) -> TokenPoolInfo:
        """Return the mint's canonical pool, creating one if none is initialized.

        A creation that loses a race with another provisioner is resolved by
        the second query, not treated as fatal.
        """
        pool = await self._find_pool(mint)
        if pool is not None:
            return pool

        create_error: Optional[LedgerError] = None
        try:
            signature = await self._ledger.send_and_confirm(
                [create_token_pool(self._payer.pubkey(), mint)], [self._payer]
            )
            logger.info("Created token pool for mint %s", mint, extra={"pool_tx_id": signature})
        except LedgerError as e:
            create_error = e
            logger.warning("Token pool creation for %s failed, re-checking: %s", mint, e)

        pool = await self._find_pool(mint)
        if pool is not None:
            return pool

        message = str(create_error) if create_error else f"No token pool for mint {mint} after creation"
        raise ProofStepError(
            ErrorCode.CREATE_POOL_FAILED,
            message,
            logs=ledger_logs(create_error) if create_error else None,
        )

    async def _find_pool(self, mint: Pubkey) -> Optional[TokenPoolInfo]:
        try:
            return select_token_pool(await self._ledger.get_token_pool_infos(mint))
        except LedgerError as e:
            raise ProofStepError(ErrorCode.CREATE_POOL_FAILED, str(e), logs=ledger_logs(e)) from e

    async def ensure_holding_account(self, mint: MintHandle, amount: int) -> HoldingAccount:
        """Create the payer's ATA when absent and mint `amount` units into it, in one transaction."""
        owner = self._payer.pubkey()
        ata = programs.get_associated_token_address(owner, mint.address)

        mint_ix = programs.mint_to(mint.address, ata, mint.authority.pubkey(), amount)
        signers = [self._payer, mint.authority]

        try:
            exists = await self._ledger.account_exists(ata)
            instructions = []
            if not exists:
                instructions.append(
                    programs.create_associated_token_account(owner, ata, owner, mint.address)
                )
            instructions.append(mint_ix)
            await self._ledger.send_and_confirm(instructions, signers)
        except LedgerError as e:
            logs = ledger_logs(e)
            if not is_benign_conflict(logs):
                raise ProofStepError(
                    ErrorCode.PREPARE_ATA_OR_MINT_FAILED, str(e), logs=logs
                ) from e
            logger.warning("Holding account %s already prepared, continuing: %s", ata, e)
            # The rejected transaction carried the mint; the account is there now.
            await self._mint_only(ata, mint_ix, signers)
            return HoldingAccount(address=ata, owner=owner, mint=mint.address)

        return HoldingAccount(address=ata, owner=owner, mint=mint.address, created=not exists)

    async def _mint_only(self, ata: Pubkey, mint_ix, signers: list[Keypair]) -> None:
        try:
            await self._ledger.send_and_confirm([mint_ix], signers)
        except LedgerError as e:
            raise ProofStepError(
                ErrorCode.PREPARE_ATA_OR_MINT_FAILED, str(e), logs=ledger_logs(e)
            ) from e
        logger.info("Minted into existing holding account %s", ata)
