"""Solana RPC client wrapper."""
from __future__ import annotations

import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import httpx

from ..exceptions import ConfirmationTimeoutError, LedgerRPCError, LedgerTransactionError

logger = logging.getLogger(__name__)

# JSON-RPC error code for a failed preflight simulation
PREFLIGHT_FAILURE_CODE = -32002


@dataclass
class SolanaConfig:
    """Solana connection configuration."""
    rpc_url: str
    commitment: str = "confirmed"
    timeout: float = 30.0
    confirm_timeout: float = 60.0
    poll_interval: float = 0.5


@dataclass
class AccountInfo:
    """Decoded account returned by getAccountInfo / getMultipleAccounts."""
    owner: str
    lamports: int
    data: bytes
    executable: bool = False


class SolanaClient:
    """Async Solana JSON-RPC client.

    Uses raw httpx for transport. All Solana RPC methods are called via
    JSON-RPC 2.0; transaction construction and signing live elsewhere.
    """

    def __init__(
        self,
        config: SolanaConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.config = config
        self._client = httpx.AsyncClient(timeout=self.config.timeout, transport=transport)
        self._request_id = 0

    async def _rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Make a JSON-RPC call to Solana."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }
        try:
            resp = await self._client.post(self.config.rpc_url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise LedgerRPCError(f"{method} failed: {e}") from e
        data = resp.json()
        if "error" in data:
            error = data["error"]
            error_data = error.get("data") if isinstance(error.get("data"), dict) else None
            logs = (error_data or {}).get("logs")
            raise LedgerRPCError(
                error.get("message", "Unknown RPC error"),
                error_data=error,
                logs=logs,
            )
        return data.get("result")

    async def get_transaction(self, signature: str) -> Optional[dict[str, Any]]:
        """Fetch a transaction by signature; None if the node does not know it."""
        return await self._rpc(
            "getTransaction",
            [
                signature,
                {
                    "commitment": self.config.commitment,
                    "encoding": "json",
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        )

    async def get_transaction_logs(self, signature: str) -> Optional[list[str]]:
        """Log messages recorded for a landed transaction."""
        try:
            tx = await self.get_transaction(signature)
        except LedgerRPCError as e:
            logger.debug("Could not fetch logs for %s: %s", signature, e)
            return None
        if not tx:
            return None
        return (tx.get("meta") or {}).get("logMessages")

    async def get_latest_blockhash(self) -> str:
        """Get latest blockhash for transaction building."""
        result = await self._rpc(
            "getLatestBlockhash", [{"commitment": self.config.commitment}]
        )
        return result["value"]["blockhash"]

    async def get_minimum_balance_for_rent_exemption(self, data_size: int) -> int:
        """Get minimum balance for rent exemption."""
        return await self._rpc("getMinimumBalanceForRentExemption", [data_size])

    async def get_account_info(self, pubkey: str) -> Optional[AccountInfo]:
        """Fetch a single account; None if it does not exist."""
        result = await self._rpc(
            "getAccountInfo",
            [pubkey, {"encoding": "base64", "commitment": self.config.commitment}],
        )
        return _decode_account(result.get("value") if result else None)

    async def get_multiple_accounts(self, pubkeys: Sequence[str]) -> list[Optional[AccountInfo]]:
        """Fetch several accounts in one round trip, preserving order."""
        result = await self._rpc(
            "getMultipleAccounts",
            [list(pubkeys), {"encoding": "base64", "commitment": self.config.commitment}],
        )
        return [_decode_account(value) for value in (result or {}).get("value", [])]

    async def send_raw_transaction(self, signed_tx_base64: str) -> str:
        """Send a signed transaction. Returns transaction signature.

        A failed preflight simulation raises LedgerTransactionError carrying
        the simulation's log lines.
        """
        try:
            result = await self._rpc(
                "sendTransaction",
                [
                    signed_tx_base64,
                    {
                        "encoding": "base64",
                        "skipPreflight": False,
                        "preflightCommitment": self.config.commitment,
                    },
                ],
            )
        except LedgerRPCError as e:
            if e.error_data.get("code") == PREFLIGHT_FAILURE_CODE or e.logs:
                raise LedgerTransactionError(e.message, logs=e.logs) from e
            raise
        logger.info("Solana tx sent: %s", result)
        return result

    async def get_signature_status(self, signature: str) -> Optional[dict[str, Any]]:
        result = await self._rpc("getSignatureStatuses", [[signature]])
        statuses = (result or {}).get("value", [])
        if not statuses:
            return None
        return statuses[0]

    async def confirm_transaction(
        self, signature: str, commitment: str | None = None
    ) -> bool:
        """Confirm a transaction has reached the desired commitment level."""
        status = await self.get_signature_status(signature)
        if status is None:
            return False
        if status.get("err"):
            logs = await self.get_transaction_logs(signature)
            raise LedgerTransactionError(
                f"Transaction failed: {status['err']}", signature=signature, logs=logs
            )
        target = commitment or self.config.commitment
        # confirmed and finalized both satisfy "confirmed"
        confirmation = status.get("confirmationStatus", "")
        if target == "finalized":
            return confirmation == "finalized"
        if target == "processed":
            return confirmation in ("processed", "confirmed", "finalized")
        return confirmation in ("confirmed", "finalized")

    async def wait_for_confirmation(
        self, signature: str, timeout: float | None = None
    ) -> None:
        """Poll until the transaction is confirmed, fails, or the wait runs out."""
        timeout = self.config.confirm_timeout if timeout is None else timeout
        deadline = time.monotonic() + timeout
        while True:
            if await self.confirm_transaction(signature):
                return
            if time.monotonic() >= deadline:
                raise ConfirmationTimeoutError(
                    f"Transaction {signature} not confirmed within {timeout:.1f}s",
                    signature=signature,
                )
            await asyncio.sleep(self.config.poll_interval)

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


def _decode_account(value: Optional[dict[str, Any]]) -> Optional[AccountInfo]:
    if not value:
        return None
    raw = value.get("data") or ["", "base64"]
    return AccountInfo(
        owner=value.get("owner", ""),
        lamports=int(value.get("lamports", 0)),
        data=base64.b64decode(raw[0]) if raw[0] else b"",
        executable=bool(value.get("executable", False)),
    )
