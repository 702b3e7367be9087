"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import accounts, holdings, imports, lots, transactions
from database import get_session_local
from logging_config import setup_logging
from services.holding_reconciliation_service import HoldingReconciliationService

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Report holding drift on startup.

    The schema is managed by Alembic (`alembic upgrade head` from backend/).
    """
    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        drifted = HoldingReconciliationService.find_drifted_holdings(db)
        if drifted:
            logger.warning(
                "%d holdings disagree with their lots; POST /api/holdings/sync to reconcile",
                len(drifted),
            )
    except Exception:
        logger.warning("Drift check failed on startup", exc_info=True)
    finally:
        db.close()
    yield


app = FastAPI(
    title="Wealth Ledger",
    description="Tax-lot accounting: lots, sales, holdings and CSV import",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(accounts.router)
app.include_router(holdings.router)
app.include_router(lots.router)
app.include_router(transactions.router)
app.include_router(imports.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
