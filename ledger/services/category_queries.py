# ledger/services/category_queries.py
#
# Category detail queries (read-only)

from collections import defaultdict
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ledger.errors import NotFoundError
from ledger.services.aggregation import in_range, trend_periods
from ledger.services.periods import DateRange
from ledger.services.transaction_queries import newest_first, paginate, transaction_row, transactions_with_category
from models import Category, MerchantMapping, Transaction


def category_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "icon": category.icon,
        "is_default": bool(category.is_default),
    }


def all_categories(db: Session) -> List[Dict[str, Any]]:
    return [category_dict(c) for c in db.query(Category).order_by(Category.name)]


def categories_with_details(db: Session) -> List[Dict[str, Any]]:
    """Categories by name, each with its transaction count and (non multi-merchant) mappings."""
    rows = (
        db.query(Category, func.count(Transaction.id).label("transaction_count"))
        .outerjoin(Transaction, Transaction.category_id == Category.id)
        .group_by(Category.id)
        .order_by(Category.name)
        .all()
    )

    mappings = (
        db.query(MerchantMapping.id, MerchantMapping.merchant_pattern, MerchantMapping.category_id)
        .filter(MerchantMapping.is_multi_merchant.is_(False), MerchantMapping.category_id.isnot(None))
        .order_by(MerchantMapping.merchant_pattern)
        .all()
    )
    by_category: Dict[str, List[Dict[str, str]]] = defaultdict(list)
    for m in mappings:
        by_category[m.category_id].append({"id": m.id, "merchant_pattern": m.merchant_pattern})

    result = []
    for category, transaction_count in rows:
        entry = category_dict(category)
        entry["transaction_count"] = int(transaction_count)
        entry["merchant_mappings"] = by_category.get(category.id, [])
        result.append(entry)
    return result


def get_category(db: Session, category_id: str) -> Dict[str, Any]:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("category", category_id)
    return category_dict(category)


def category_stats(db: Session, category_id: str, range_: Optional[DateRange] = None) -> Dict[str, Any]:
    rows = in_range(
        db.query(Transaction.date, Transaction.amount, Transaction.merchant).filter(
            Transaction.category_id == category_id
        ),
        range_,
    ).all()

    if not rows:
        return {
            "total_expenses": 0.0,
            "total_income": 0.0,
            "transaction_count": 0,
            "avg_transaction": 0.0,
            "merchant_count": 0,
            "first_transaction": None,
            "last_transaction": None,
        }

    expenses = [-float(r.amount) for r in rows if r.amount < 0]
    income = sum(float(r.amount) for r in rows if r.amount >= 0)
    total_expenses = sum(expenses)
    dates = [r.date for r in rows]
    return {
        "total_expenses": round(total_expenses, 2),
        "total_income": round(income, 2),
        "transaction_count": len(rows),
        "avg_transaction": round(total_expenses / len(expenses), 2) if expenses else 0.0,
        "merchant_count": len({r.merchant.lower() for r in rows}),
        "first_transaction": min(dates),
        "last_transaction": max(dates),
    }


def category_top_merchants(
    db: Session,
    category_id: str,
    limit: int = 10,
    range_: Optional[DateRange] = None,
) -> List[Dict[str, Any]]:
    """Top merchants of one category by expense total (case-insensitive grouping)."""
    rows = (
        in_range(
            db.query(Transaction.merchant, Transaction.amount).filter(
                Transaction.category_id == category_id,
                Transaction.amount < 0,
            ),
            range_,
        )
        .order_by(Transaction.date.asc(), Transaction.created_at.asc())
        .all()
    )

    grouped: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        entry = grouped.setdefault(r.merchant.lower().strip(), {"merchant": r.merchant, "total": 0.0, "transaction_count": 0})
        entry["total"] += -float(r.amount)
        entry["transaction_count"] += 1

    ranked = sorted(grouped.values(), key=lambda e: (-e["total"], e["merchant"].lower()))[: max(limit, 0)]
    for entry in ranked:
        entry["total"] = round(entry["total"], 2)
    return ranked


def single_category_period_trends(
    db: Session,
    category_id: str,
    timeframe: str,
    count: int,
    end_period: Optional[str] = None,
    date_range: Optional[DateRange] = None,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """Zero-filled expenses, income and count per period for one category."""
    periods = trend_periods(timeframe, count, end_period, date_range, today)
    if not periods:
        return []

    rows = (
        db.query(Transaction.date, Transaction.amount)
        .filter(
            Transaction.category_id == category_id,
            Transaction.date >= periods[0].start,
            Transaction.date < periods[-1].end,
        )
        .all()
    )

    result = []
    for p in periods:
        expenses = 0.0
        income = 0.0
        n = 0
        for r in rows:
            if not p.contains(r.date):
                continue
            amount = float(r.amount)
            if amount < 0:
                expenses += -amount
            else:
                income += amount
            n += 1
        result.append(
            {
                "period": p.label,
                "period_key": p.key,
                "expenses": round(expenses, 2),
                "income": round(income, 2),
                "transaction_count": n,
            }
        )
    return result


def category_transactions(
    db: Session,
    category_id: str,
    page: Optional[int],
    page_size: Optional[int],
    range_: Optional[DateRange] = None,
) -> Dict[str, Any]:
    query = in_range(transactions_with_category(db).filter(Transaction.category_id == category_id), range_)
    return paginate(newest_first(query), page, page_size, transaction_row)


def category_merchant_mappings(db: Session, category_id: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(MerchantMapping)
        .filter(MerchantMapping.category_id == category_id)
        .order_by(MerchantMapping.merchant_pattern)
        .all()
    )
    return [
        {"id": m.id, "merchant_pattern": m.merchant_pattern, "is_multi_merchant": bool(m.is_multi_merchant)}
        for m in rows
    ]
