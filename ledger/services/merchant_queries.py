# ledger/services/merchant_queries.py
#
# Merchant detail queries (read-only)
# A "merchant" here is a merchant mapping. Transactions belong to a merchant
# when the mapping's pattern occurs in their merchant text, case-insensitively;
# the same rule the matcher uses at ingestion time.

from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ledger.errors import NotFoundError
from ledger.services.aggregation import in_range, trend_periods
from ledger.services.matcher import MerchantMatcher, pattern_matches
from ledger.services.periods import DateRange
from ledger.services.transaction_queries import newest_first, paginate, transaction_row, transactions_with_category
from models import Category, MerchantMapping, Transaction


def matching_pattern(query: Query, pattern: str) -> Query:
    return query.filter(func.lower(Transaction.merchant).contains(pattern.lower(), autoescape=True))


def _mapping_dict(row) -> Dict[str, Any]:
    return {
        "id": row.id,
        "merchant_pattern": row.merchant_pattern,
        "category_id": row.category_id,
        "category_name": row.category_name,
        "category_icon": row.category_icon,
        "is_multi_merchant": bool(row.is_multi_merchant),
    }


def _mappings_with_category(db: Session) -> Query:
    return db.query(
        MerchantMapping.id,
        MerchantMapping.merchant_pattern,
        MerchantMapping.category_id,
        MerchantMapping.is_multi_merchant,
        Category.name.label("category_name"),
        Category.icon.label("category_icon"),
    ).outerjoin(Category, MerchantMapping.category_id == Category.id)


def merchants_with_totals(db: Session, range_: Optional[DateRange]) -> List[Dict[str, Any]]:
    """
    Every merchant mapping with the expenses matched to it in the range,
    largest total first. A transaction matching several patterns counts
    towards each of them.
    """
    mappings = _mappings_with_category(db).order_by(MerchantMapping.merchant_pattern).all()
    expenses = in_range(db.query(Transaction.merchant, Transaction.amount).filter(Transaction.amount < 0), range_).all()

    result = []
    for mapping in mappings:
        total = 0.0
        count = 0
        for tx in expenses:
            if pattern_matches(mapping.merchant_pattern, tx.merchant):
                total += -float(tx.amount)
                count += 1
        entry = _mapping_dict(mapping)
        entry.update({"total_expenses": round(total, 2), "transaction_count": count})
        result.append(entry)

    result.sort(key=lambda e: -e["total_expenses"])
    return result


def find_merchant_mapping_id(db: Session, merchant: str) -> Optional[str]:
    """Id of the mapping the matcher would select for `merchant`, or None."""
    mapping = MerchantMatcher.load(db).find(merchant)
    return mapping.id if mapping is not None else None


def get_merchant(db: Session, mapping_id: str) -> Dict[str, Any]:
    row = _mappings_with_category(db).filter(MerchantMapping.id == mapping_id).one_or_none()
    if row is None:
        raise NotFoundError("merchant_mapping", mapping_id, "Merchant not found")
    return _mapping_dict(row)


def merchant_stats(db: Session, pattern: str, range_: Optional[DateRange] = None) -> Dict[str, Any]:
    """Count of all matching rows plus expense total/average and first/last date."""
    rows = in_range(
        matching_pattern(db.query(Transaction.date, Transaction.amount), pattern),
        range_,
    ).all()

    if not rows:
        return {
            "total_expenses": 0.0,
            "transaction_count": 0,
            "avg_transaction": 0.0,
            "first_transaction": None,
            "last_transaction": None,
        }

    expenses = [-float(r.amount) for r in rows if r.amount < 0]
    total = sum(expenses)
    dates = [r.date for r in rows]
    return {
        "total_expenses": round(total, 2),
        "transaction_count": len(rows),
        "avg_transaction": round(total / len(expenses), 2) if expenses else 0.0,
        "first_transaction": min(dates),
        "last_transaction": max(dates),
    }


def merchant_transactions(
    db: Session,
    pattern: str,
    range_: Optional[DateRange],
    page: Optional[int],
    page_size: Optional[int],
) -> Dict[str, Any]:
    query = in_range(matching_pattern(transactions_with_category(db), pattern), range_)
    return paginate(newest_first(query), page, page_size, transaction_row)


def merchant_period_trends(
    db: Session,
    pattern: str,
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    date_range: Optional[DateRange] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Zero-filled expense total and count per period for one merchant pattern."""
    periods = trend_periods(timeframe, count, end_period, date_range, today)
    if not periods:
        return []

    rows = (
        matching_pattern(db.query(Transaction.date, Transaction.amount), pattern)
        .filter(
            Transaction.amount < 0,
            Transaction.date >= periods[0].start,
            Transaction.date < periods[-1].end,
        )
        .all()
    )

    result = []
    for p in periods:
        in_period = [r for r in rows if p.contains(r.date)]
        result.append(
            {
                "period": p.label,
                "period_key": p.key,
                "expenses": round(sum(-float(r.amount) for r in in_period), 2),
                "transaction_count": len(in_period),
            }
        )
    return result
