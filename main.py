# main.py
# Role: Application entry point for the household ledger.
#       Initializes logging and the FastAPI app, creates database tables,
#       maps ledger errors onto JSON responses, and registers all route modules.

"""
Main FastAPI app for the household ledger.

Here we only:
- configure logging
- create the FastAPI app
- create DB tables and seed the default categories
- register error handlers
- include route modules
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from db import Base, SessionLocal, engine
from ledger.errors import LedgerError
from ledger.routes_categories import router as categories_router
from ledger.routes_dashboard import router as dashboard_router
from ledger.routes_merchants import router as merchants_router
from ledger.routes_root import router as root_router
from ledger.routes_transactions import router as transactions_router
from ledger.routes_upload import router as upload_router
from ledger.services.categories import seed_default_categories
from ledger.settings import LOG_LEVEL

import models  # noqa: F401  (registers the ORM tables on Base.metadata)

logger = logging.getLogger(__name__)


def configure_logging(level: str = LOG_LEVEL) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# -------------------------------------------------------------------
# App & DB setup
# -------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables (only if they don't exist yet).
    # This is safe to run on startup for SQLite and development usage.
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_default_categories(db)
    finally:
        db.close()
    yield


configure_logging()

# FastAPI application instance
app = FastAPI(title="Household Ledger", lifespan=lifespan)

# -------------------------------------------------------------------
# Error handlers
# -------------------------------------------------------------------

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "InternalError", "message": "The operation failed"},
    )


# -------------------------------------------------------------------
# Include routers
# -------------------------------------------------------------------

# Health / landing
app.include_router(root_router)

# Statement upload (parse → dedupe → auto-categorize)
app.include_router(upload_router)

# Transactions list, detail, edits, categorization and review queue
app.include_router(transactions_router)

# Dashboard (summaries, trends, comparison, upcoming)
app.include_router(dashboard_router)

# Merchant mappings and merchant detail pages
app.include_router(merchants_router)

# Categories and category detail pages
app.include_router(categories_router)
