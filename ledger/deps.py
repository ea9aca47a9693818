# ledger/deps.py
# Role: Shared request-level dependencies.
#       Provides the standard SQLAlchemy database session dependency and the
#       query-parameter parsing shared by the dashboard / detail routes.

"""
Shared dependencies for the ledger API.
"""

from datetime import date, timedelta
from typing import Generator, Optional

from fastapi import Query
from sqlalchemy.orm import Session

from db import SessionLocal
from ledger.errors import ValidationError
from ledger.services.periods import DateRange, date_range_for, parse_timeframe

# -------------------------------------------------------------------
# Database dependency
# -------------------------------------------------------------------

def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a database session and ensures it is closed.

    Typical usage in routes:
        db: Session = Depends(get_db)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# -------------------------------------------------------------------
# Period parameters
# -------------------------------------------------------------------

def get_timeframe(timeframe: str = Query("month")) -> str:
    return parse_timeframe(timeframe)


def resolve_range(
    timeframe: str,
    period: Optional[str],
    start_date: Optional[date],
    end_date: Optional[date],
) -> DateRange:
    """
    An explicit start/end (end inclusive, as typed by the user) wins over a
    period key; otherwise the period (current when None) of the timeframe.
    """
    if start_date or end_date:
        if not (start_date and end_date):
            raise ValidationError("start_date and end_date must be given together", field="start_date")
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date", field="end_date")
        return DateRange(start_date, end_date + timedelta(days=1), f"{start_date} - {end_date}")
    return date_range_for(timeframe, period)


def optional_range(start_date: Optional[date], end_date: Optional[date]) -> Optional[DateRange]:
    if not start_date and not end_date:
        return None
    return resolve_range("month", None, start_date, end_date)
