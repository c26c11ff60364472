"""
Application Entry Point

This module defines the FastAPI application, wires the owned resources
(store, embedding provider, vector index registry, searcher) through the
lifespan, registers routers and installs the exception handlers.

Resources are created at startup and closed at shutdown; nothing is
held in module globals apart from the default `app` instance.
"""

from __future__ import annotations

import contextlib
import logging
from typing import AsyncIterator

from fastapi import FastAPI

from .api import corpus_routes, health_routes, translate_routes, user_pair_routes
from .config import settings
from .core.errors import register_exception_handlers
from .db.pair_store import TranslationStore
from .db.user_store import UserPairStore
from .embeddings.embedder import EmbeddingProvider
from .embeddings.registry import VectorIndexRegistry
from .retrieval.hybrid import HybridSearcher

logger = logging.getLogger("malinali.app")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Open the store and load the model before serving; release both after.

    Startup fails fast when the model or tokenizer cannot be loaded.
    """
    logger.info("Starting malinali")

    store = await TranslationStore.open(settings.database_url)
    provider = EmbeddingProvider()
    try:
        provider.initialize()
    except Exception:
        await store.close()
        raise

    registry = VectorIndexRegistry(provider.generation, settings.data_root_path)
    user_pairs = UserPairStore(store)

    app.state.store = store
    app.state.provider = provider
    app.state.registry = registry
    app.state.user_pairs = user_pairs
    app.state.searcher = HybridSearcher(store, provider, registry, user_pairs=user_pairs)

    logger.info(
        "Ready: model %s, output %r, database %s",
        provider.generation,
        provider.output_name,
        settings.database_url,
    )

    try:
        yield
    finally:
        logger.info("Shutting down malinali")
        provider.close()
        await store.close()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    app = FastAPI(
        title="malinali",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    register_exception_handlers(app)

    app.include_router(health_routes.router)
    app.include_router(translate_routes.router)
    app.include_router(user_pair_routes.router)
    app.include_router(corpus_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
