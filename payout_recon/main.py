"""
FastAPI application entry point for the payout reconciliation service.

Configures logging and CORS, creates the database pool and schema on startup,
and registers the reconciliation router.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from payout_recon.core.database import init_db, close_db
from payout_recon.api.reconciliation import router as reconciliation_router
from payout_recon.services.store import ensure_schema

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Lifespan context manager for FastAPI application startup and shutdown events.

    On startup:
        - Initialize database connection pool
        - Create the reconciliation tables if they do not exist

    On shutdown:
        - Close database connection pool
    """
    logger.info("Payout reconciliation API starting")
    try:
        pool = await init_db()
        async with pool.acquire() as conn:
            await ensure_schema(conn)
        logger.info("Database connection pool initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        # Keep serving /health so monitoring sees the process as up

    yield

    logger.info("Payout reconciliation API shutting down")
    try:
        await close_db()
        logger.info("Database connection pool closed")
    except Exception as e:
        logger.error(f"Error closing database pool: {e}")


app = FastAPI(
    title="Payout Reconciliation API",
    version="1.0.0",
    description=(
        "Reconciles lead-source call payouts against routing platform call legs "
        "and corrects the routing platform where they disagree."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reconciliation_router, tags=["reconciliation"])  # Has its own /reconciliation prefix


@app.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring and load balancer checks.

    Returns:
        Dict with status 'healthy'
    """
    return {"status": "healthy"}


@app.get("/")
async def root():
    return {
        "name": "Payout Reconciliation API",
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "payout_recon.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
