"""Proof anchoring pipeline tying verification, provisioning, compression, and storage."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from .config import RuntimeProofSettings, load_keypair, load_optional_keypair
from .exceptions import ProofStepError, ProofStoreError
from .executor import MintAndCompressExecutor
from .hashing import decode_tx_bytes, verify_runtime_proof_hash
from .logging_config import set_proof_context
from .models import CHAIN, AnchoredProof, ErrorCode, PipelineStage, ProofOutcome, ProofRequest
from .provisioner import TokenInfrastructureProvisioner
from .solana import SolanaClient, SolanaConfig, SolanaLedger
from .solana.gateway import LedgerGateway
from .store import ProofStore, create_proof_store

logger = logging.getLogger(__name__)


class ProofPipeline:
    """Runs one proof request through every stage, strictly forward.

    Nothing is rolled back: a failure after minting leaves the minted units
    on the ledger and reports the stage that was reached.
    """

    def __init__(
        self,
        *,
        ledger: LedgerGateway,
        store: ProofStore,
        provisioner: TokenInfrastructureProvisioner,
        executor: MintAndCompressExecutor,
        chain: str = CHAIN,
    ) -> None:
        self._ledger = ledger
        self._store = store
        self._provisioner = provisioner
        self._executor = executor
        self._chain = chain

    @property
    def ledger(self) -> LedgerGateway:
        return self._ledger

    @property
    def store(self) -> ProofStore:
        return self._store

    async def run(self, request: ProofRequest) -> ProofOutcome:
        set_proof_context(request.user_id, request.tx_signature)
        stage = PipelineStage.RECEIVED
        logger.info("Proof request received", extra={"stage": stage.value})

        try:
            tx_bytes = decode_tx_bytes(request.tx_bytes_base58)
            if not verify_runtime_proof_hash(
                tx_bytes, request.timestamp, request.runtime_id, request.runtime_proof_hash
            ):
                raise ProofStepError(
                    ErrorCode.RUNTIME_HASH_MISMATCH,
                    "runtimeProofHash does not match the transaction fingerprint",
                )
            stage = self._advance(PipelineStage.HASH_VERIFIED)

            tx_info = await self._ledger.get_transaction(request.tx_signature)
            if not tx_info:
                raise ProofStepError(ErrorCode.TX_NOT_FOUND, f"Transaction {request.tx_signature} not found")
            stage = self._advance(PipelineStage.TX_CONFIRMED)

            self._provisioner.check_mint_authority()
            tree = await self._executor.select_state_tree()
            mint = await self._provisioner.ensure_mint(request)
            pool = await self._provisioner.ensure_pool(mint.address)
            amount = request.amount
            holding = await self._provisioner.ensure_holding_account(mint, amount)
            stage = self._advance(
                PipelineStage.MINT_READY, mint=str(mint.address), amount=amount, tree=str(tree.tree)
            )

            compressed_tx_id = await self._executor.compress(
                mint.address,
                amount,
                holding.address,
                self._provisioner.payer.pubkey(),
                pool,
                tree,
            )
            stage = self._advance(PipelineStage.COMPRESSED, compressed_tx_id=compressed_tx_id)
        except ProofStepError as e:
            logger.warning(
                "Proof pipeline failed: %s",
                e.code.value,
                extra={"stage": stage.value, "error_code": e.code.value},
            )
            return ProofOutcome.failure(e.code, stage, message=e.message, logs=e.logs)

        await self._executor.send_memo(mint.address, compressed_tx_id, request.runtime_proof_hash)

        proof = AnchoredProof.from_request(
            request,
            mint_address=str(mint.address),
            mint_tx_id=mint.mint_tx_id,
            compressed_tx_id=compressed_tx_id,
            chain=self._chain,
        )
        try:
            proof = await self._store.save(proof)
        except ProofStoreError as e:
            logger.error(
                "Proof anchored on-ledger but not persisted",
                extra={"stage": stage.value, "mint": proof.mint_address, "compressed_tx_id": compressed_tx_id},
            )
            return ProofOutcome.failure(ErrorCode.PERSIST_FAILED, stage, message=e.message, proof=proof)

        self._advance(PipelineStage.PERSISTED, proof_id=proof.id)
        return ProofOutcome.success(proof, request.metadata(self._chain))

    @staticmethod
    def _advance(stage: PipelineStage, **fields) -> PipelineStage:
        logger.info("Proof stage %s", stage.value, extra={"stage": stage.value, **fields})
        return stage


@dataclass
class PipelineResources:
    """Collaborators that own connections and must be closed on shutdown."""
    pipeline: ProofPipeline
    ledger: SolanaLedger
    store: ProofStore

    async def close(self) -> None:
        await self.ledger.close()
        await self.store.close()


def build_pipeline(settings: RuntimeProofSettings, store: ProofStore | None = None) -> PipelineResources:
    """Wire the concrete ledger, store, and signing keys from configuration."""
    payer = load_keypair(settings.payer_secret_base58, "PAYER_SECRET_BASE58")
    master_mint = settings.master_mint
    master_authority = load_optional_keypair(
        settings.master_mint_authority_secret_base58, "MASTER_MINT_AUTHORITY_SECRET_BASE58"
    )

    client = SolanaClient(
        SolanaConfig(
            rpc_url=settings.solana_rpc,
            commitment=settings.commitment,
            timeout=settings.rpc_timeout_seconds,
            confirm_timeout=settings.confirm_timeout_seconds,
            poll_interval=settings.confirm_poll_interval_seconds,
        )
    )
    ledger = SolanaLedger(
        client,
        state_trees=settings.state_tree_entries,
        state_tree_lookup_table=settings.state_tree_lookup_table,
        nullify_lookup_table=settings.nullify_lookup_table,
    )
    store = store or create_proof_store(settings.database_url)

    provisioner = TokenInfrastructureProvisioner(
        ledger,
        payer,
        master_mint=master_mint,
        master_mint_authority=master_authority,
        proof_uri_base=settings.proof_uri_base,
    )
    executor = MintAndCompressExecutor(ledger, payer, memo_timeout=settings.memo_timeout_seconds)

    logger.info(
        "Proof pipeline configured",
        extra={
            "payer": str(payer.pubkey()),
            "master_mint": str(master_mint) if master_mint else None,
            "rpc": settings.solana_rpc,
        },
    )
    pipeline = ProofPipeline(ledger=ledger, store=store, provisioner=provisioner, executor=executor)
    return PipelineResources(pipeline=pipeline, ledger=ledger, store=store)
