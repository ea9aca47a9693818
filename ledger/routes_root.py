# routes_root.py
"""
Root / basic endpoints (health, landing).
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from ledger.deps import get_db

router = APIRouter()


@router.get("/")
def read_root():
    """Landing endpoint: points clients at the API docs."""
    return {"name": "Household Ledger", "docs": "/docs", "health": "/health"}


@router.get("/health")
def health(db: Session = Depends(get_db)):
    """
    Liveness + database check.
    """
    db.execute(text("SELECT 1"))
    return {"status": "ok"}
