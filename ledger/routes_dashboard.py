# routes_dashboard.py
"""
Dashboard endpoints: period summaries, trends, comparisons, upcoming yearly
expenses and the month picker. All read-only.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ledger.deps import get_db, get_timeframe, resolve_range
from ledger.schemas import UpcomingExpenseOut
from ledger.services import aggregation
from ledger.services.periods import convert_period, is_current_period, parse_timeframe, period_offset
from ledger.services.recurring import detect_upcoming

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


def _range_block(range_) -> dict:
    return {"start": range_.start, "end": range_.end, "label": range_.label}


@router.get("/summary")
def dashboard_summary(
    timeframe: str = Depends(get_timeframe),
    period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    """Spending per category for the selected period (or explicit date range)."""
    range_ = resolve_range(timeframe, period, start_date, end_date)
    return {
        "range": _range_block(range_),
        "timeframe": timeframe,
        "is_current": is_current_period(timeframe, period),
        "previous_period": period_offset(timeframe, period, -1),
        "next_period": period_offset(timeframe, period, 1),
        "categories": aggregation.category_summary(db, range_),
    }


@router.get("/totals")
def dashboard_totals(
    timeframe: str = Depends(get_timeframe),
    period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    range_ = resolve_range(timeframe, period, start_date, end_date)
    return {"range": _range_block(range_), **aggregation.income_and_expenses(db, range_)}


@router.get("/trends")
def dashboard_trends(
    timeframe: str = Depends(get_timeframe),
    count: int = Query(6, ge=1, le=60),
    end_period: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return aggregation.period_trends(db, timeframe, count, end_period)


@router.get("/category-trends")
def dashboard_category_trends(
    timeframe: str = Depends(get_timeframe),
    count: int = Query(6, ge=1, le=60),
    end_period: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return aggregation.category_period_trends(db, timeframe, count, end_period)


@router.get("/top-merchants")
def dashboard_top_merchants(
    timeframe: str = Depends(get_timeframe),
    period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    range_ = resolve_range(timeframe, period, start_date, end_date)
    return aggregation.top_merchants(db, range_, limit)


@router.get("/comparison")
def dashboard_comparison(
    timeframe: str = Depends(get_timeframe),
    period: str | None = Query(None),
    db: Session = Depends(get_db),
):
    return aggregation.period_comparison(db, timeframe, period)


@router.get("/upcoming", response_model=List[UpcomingExpenseOut])
def dashboard_upcoming(db: Session = Depends(get_db)):
    """Yearly expenses expected within the next 60 days."""
    return detect_upcoming(db)


@router.get("/months")
def dashboard_months(db: Session = Depends(get_db)):
    return aggregation.available_months(db)


@router.get("/convert-period")
def dashboard_convert_period(
    timeframe: str = Depends(get_timeframe),
    to_timeframe: str = Query(...),
    period: str | None = Query(None),
):
    """Period key to select after switching granularity (anchored on the period's last day)."""
    to_timeframe = parse_timeframe(to_timeframe)
    return {"timeframe": to_timeframe, "period": convert_period(timeframe, to_timeframe, period)}
