"""API composition root."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from runtime_proofs import __version__
from runtime_proofs.config import RuntimeProofSettings, load_settings
from runtime_proofs.logging_config import setup_logging
from runtime_proofs.models import CHAIN
from runtime_proofs.orchestrator import PipelineResources, ProofPipeline, build_pipeline
from runtime_proofs.store import ProofStore, create_proof_store

from .middleware import RequestIDMiddleware
from .routers import proofs

logger = logging.getLogger(__name__)


class PipelineHolder:
    """Builds the pipeline on first use and owns its connections."""

    def __init__(self, settings: RuntimeProofSettings, store: ProofStore):
        self._settings = settings
        self._store = store
        self._resources: Optional[PipelineResources] = None

    def get(self) -> ProofPipeline:
        if self._resources is None:
            self._resources = build_pipeline(self._settings, store=self._store)
        return self._resources.pipeline

    async def close(self) -> None:
        if self._resources is not None:
            await self._resources.close()
            self._resources = None
        else:
            await self._store.close()


def create_app(settings: RuntimeProofSettings | None = None) -> FastAPI:
    settings = settings or load_settings()
    setup_logging(level=settings.log_level, json_format=settings.log_json)

    store = create_proof_store(settings.database_url)
    holder = PipelineHolder(settings, store)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting runtime proof API", extra={"environment": settings.environment})
        yield
        logger.info("Shutting down runtime proof API")
        await holder.close()

    app = FastAPI(
        title="Runtime Proof Anchoring API",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(RequestIDMiddleware, exclude_paths=["/health"])

    @app.get("/health")
    async def health():
        return {"status": "ok", "chain": CHAIN}

    app.dependency_overrides[proofs.get_deps] = lambda: proofs.ProofsDependencies(  # type: ignore[arg-type]
        pipeline=holder.get,
        store=store,
    )
    app.include_router(proofs.router, prefix="/proofs")

    logger.info(
        "API initialized with storage backend: %s",
        "PostgreSQL" if settings.uses_postgres else "memory",
    )
    return app
