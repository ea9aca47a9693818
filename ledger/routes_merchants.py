# routes_merchants.py
"""
Merchant (merchant mapping) endpoints: list with totals, detail pages and
mapping management.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ledger.auth import AuthSession, require_session
from ledger.deps import get_db, get_timeframe, optional_range, resolve_range
from ledger.schemas import MerchantCategoryUpdate, MerchantMappingOut, MerchantMultiToggle
from ledger.services import categorization, merchant_queries
from ledger.settings import PAGE_SIZE_DEFAULT

router = APIRouter(prefix="/merchants", tags=["merchants"])


@router.get("")
def merchants_list(
    timeframe: str = Depends(get_timeframe),
    period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    range_ = resolve_range(timeframe, period, start_date, end_date)
    return merchant_queries.merchants_with_totals(db, range_)


@router.get("/lookup")
def merchant_lookup(merchant: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Mapping id the matcher would select for a raw merchant text."""
    return {"merchant": merchant, "mapping_id": merchant_queries.find_merchant_mapping_id(db, merchant)}


@router.put("/category", response_model=MerchantMappingOut)
def merchant_update_category(
    payload: MerchantCategoryUpdate,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    return categorization.update_merchant_category(db, payload.merchant_pattern, payload.category_id)


@router.put("/multi-merchant", response_model=MerchantMappingOut)
def merchant_toggle_multi(
    payload: MerchantMultiToggle,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    return categorization.toggle_multi_merchant(db, payload.merchant_pattern, payload.is_multi_merchant)


@router.get("/multi-merchant")
def merchant_multi_patterns(db: Session = Depends(get_db)):
    return categorization.multi_merchant_patterns(db)


@router.get("/{mapping_id}")
def merchant_detail(mapping_id: str, db: Session = Depends(get_db)):
    return merchant_queries.get_merchant(db, mapping_id)


@router.get("/{mapping_id}/stats")
def merchant_detail_stats(
    mapping_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    merchant = merchant_queries.get_merchant(db, mapping_id)
    return merchant_queries.merchant_stats(db, merchant["merchant_pattern"], optional_range(start_date, end_date))


@router.get("/{mapping_id}/transactions")
def merchant_detail_transactions(
    mapping_id: str,
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    page: int = Query(1),
    page_size: int = Query(PAGE_SIZE_DEFAULT),
    db: Session = Depends(get_db),
):
    merchant = merchant_queries.get_merchant(db, mapping_id)
    return merchant_queries.merchant_transactions(
        db, merchant["merchant_pattern"], optional_range(start_date, end_date), page, page_size
    )


@router.get("/{mapping_id}/trends")
def merchant_detail_trends(
    mapping_id: str,
    timeframe: str = Depends(get_timeframe),
    count: int = Query(12, ge=1, le=60),
    end_period: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    db: Session = Depends(get_db),
):
    merchant = merchant_queries.get_merchant(db, mapping_id)
    return merchant_queries.merchant_period_trends(
        db,
        merchant["merchant_pattern"],
        timeframe,
        count,
        end_period,
        date_range=optional_range(start_date, end_date),
    )
