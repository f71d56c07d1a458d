"""
Parimutuel Pricing Engine - FastAPI Application
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
import uvicorn

from core.config import settings
from api.websocket import router as ws_router, manager as ws_manager
from parimutuel.api import router as api_router
from parimutuel.services import (
    AccessPolicy,
    ChainClient,
    ChainClientConfig,
    PoolSyncConfig,
    PoolSyncService,
    PredictionLedgerSync,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(f"Starting {settings.app_name}...")

    # Initialize services
    app.state.settings = settings
    app.state.chain_client = ChainClient(ChainClientConfig(
        pool_api_base=settings.pool_api_base,
        indexer_api_base=settings.indexer_api_base,
        timeout_seconds=settings.http_timeout_seconds,
    ))
    app.state.pool_sync = PoolSyncService(
        app.state.chain_client,
        PoolSyncConfig(
            poll_interval_seconds=settings.pool_poll_interval_seconds,
            currency_symbol=settings.currency_symbol,
            max_cached_markets=settings.pool_cache_max_markets,
        ),
    )
    app.state.ledger_sync = PredictionLedgerSync(
        app.state.chain_client,
        max_cached_users=settings.ledger_cache_max_users,
    )
    app.state.access_policy = AccessPolicy(settings.admin_addresses)

    # Push pool updates to websocket subscribers
    app.state.pool_sync.on_update(ws_manager.push_pool_update)

    logger.info("Application started successfully")

    yield

    # Cleanup
    logger.info("Shutting down...")
    await app.state.pool_sync.stop()
    await app.state.chain_client.close()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    description="Odds, order previews and live stake pool sync for parimutuel prediction markets",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(api_router, prefix="/api/v1")
app.include_router(ws_router, prefix="/ws")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.environment,
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
    )
