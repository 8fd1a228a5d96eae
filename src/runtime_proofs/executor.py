"""Compression of minted proof units and the best-effort memo."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from .exceptions import LedgerError, ProofStepError, ledger_logs
from .models import ErrorCode
from .solana import programs
from .solana.compression import TokenPoolInfo, TreeInfo, select_state_tree
from .solana.gateway import LedgerGateway

logger = logging.getLogger(__name__)

MEMO_PROOF_TYPE = "rtp"
DEFAULT_MEMO_TIMEOUT_SECONDS = 10.0


def build_memo_payload(mint: Pubkey, compressed_tx_id: str, proof_hash: str) -> str:
    return json.dumps(
        {"t": MEMO_PROOF_TYPE, "m": str(mint), "c": compressed_tx_id, "h": proof_hash},
        separators=(",", ":"),
    )


class MintAndCompressExecutor:
    """Value-bearing ledger steps after the infrastructure is in place.

    Compression is never retried here: the units are already minted, and a
    blind resubmission could compress twice. Failures surface with the
    ledger's diagnostics and recovery is left to the operator.
    """

    def __init__(
        self,
        ledger: LedgerGateway,
        payer: Keypair,
        *,
        memo_timeout: float = DEFAULT_MEMO_TIMEOUT_SECONDS,
    ) -> None:
        self._ledger = ledger
        self._payer = payer
        self._memo_timeout = memo_timeout

    async def select_state_tree(self) -> TreeInfo:
        """Pick an active state tree before anything is submitted."""
        try:
            trees = await self._ledger.get_state_tree_infos()
        except LedgerError as e:
            raise ProofStepError(ErrorCode.COMPRESS_TX_FAILED, str(e), logs=ledger_logs(e)) from e

        tree = select_state_tree(trees)
        if tree is None:
            raise ProofStepError(ErrorCode.COMPRESS_TX_FAILED, "No active state tree available")
        return tree

    async def compress(
        self,
        mint: Pubkey,
        amount: int,
        source_account: Pubkey,
        destination_owner: Pubkey,
        pool: TokenPoolInfo,
        tree: TreeInfo,
    ) -> str:
        """Compress `amount` units held at `source_account`; returns the compression tx id."""
        try:
            signature = await self._ledger.compress(
                payer=self._payer,
                owner=self._payer,
                mint=mint,
                amount=amount,
                source=source_account,
                to_address=destination_owner,
                tree=tree,
                pool=pool,
            )
        except LedgerError as e:
            logger.error(
                "Compression failed for mint %s; minted units remain in %s",
                mint,
                source_account,
                extra={"mint": str(mint), "amount": amount, "error_code": e.error_code, **e.details},
            )
            raise ProofStepError(ErrorCode.COMPRESS_TX_FAILED, str(e), logs=ledger_logs(e)) from e

        logger.info(
            "Compressed %d unit(s) of %s",
            amount,
            mint,
            extra={"mint": str(mint), "compressed_tx_id": signature},
        )
        return signature

    async def send_memo(self, mint: Pubkey, compressed_tx_id: str, proof_hash: str) -> Optional[str]:
        """Publish a public memo pointing at the proof. Failures are logged and dropped."""
        instruction = programs.memo(build_memo_payload(mint, compressed_tx_id, proof_hash))
        try:
            return await asyncio.wait_for(
                self._ledger.send_and_confirm([instruction], [self._payer]),
                timeout=self._memo_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Proof memo for %s timed out after %.1fs", compressed_tx_id, self._memo_timeout)
            return None
        except Exception as e:  # never affects the proof outcome
            logger.warning("Proof memo not recorded for %s: %s", compressed_tx_id, e)
            return None
