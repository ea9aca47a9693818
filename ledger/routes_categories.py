# routes_categories.py
"""
Category endpoints: list, CRUD and the category detail page data.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ledger.auth import AuthSession, require_session
from ledger.deps import get_db, get_timeframe, optional_range
from ledger.schemas import CategoryCreate, CategoryOut, CategoryUpdate
from ledger.services import categories, category_queries
from ledger.settings import PAGE_SIZE_DEFAULT

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("")
def categories_list(
    details: bool = Query(False, description="Include transaction counts and merchant mappings"),
    db: Session = Depends(get_db),
):
    if details:
        return category_queries.categories_with_details(db)
    return category_queries.all_categories(db)


@router.post("", response_model=CategoryOut, status_code=201)
def category_create(
    payload: CategoryCreate,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    return categories.create_category(db, payload.name, payload.icon, payload.description)


@router.get("/{category_id}")
def category_detail(category_id: str, db: Session = Depends(get_db)):
    return category_queries.get_category(db, category_id)


@router.patch("/{category_id}", response_model=CategoryOut)
def category_update(
    category_id: str,
    payload: CategoryUpdate,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    return categories.update_category(db, category_id, payload.name, payload.icon, payload.description)


@router.delete("/{category_id}", status_code=204)
def category_delete(
    category_id: str,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    categories.delete_category(db, category_id)
    return Response(status_code=204)


@router.get("/{category_id}/details")
def category_details(
    category_id: str,
    timeframe: str = Depends(get_timeframe),
    count: int = Query(12, ge=1, le=60),
    end_period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1),
    page_size: int = Query(PAGE_SIZE_DEFAULT),
    top: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    """Everything the category page shows, in one call."""
    category = category_queries.get_category(db, category_id)
    range_ = optional_range(start_date, end_date)
    return {
        "category": category,
        "stats": category_queries.category_stats(db, category_id, range_),
        "top_merchants": category_queries.category_top_merchants(db, category_id, top, range_),
        "trends": category_queries.single_category_period_trends(
            db, category_id, timeframe, count, end_period, date_range=range_
        ),
        "transactions": category_queries.category_transactions(db, category_id, page, page_size, range_),
        "merchant_mappings": category_queries.category_merchant_mappings(db, category_id),
    }
