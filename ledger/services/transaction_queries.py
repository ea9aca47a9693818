# ledger/services/transaction_queries.py
#
# Transaction listing & lookup (read-only)
# Filtered, paginated listings newest-first, single-transaction detail and the
# "needs review" queue (uncategorized rows).

import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Query, Session

from ledger.errors import NotFoundError
from ledger.services.periods import DateRange
from ledger.settings import PAGE_SIZE_DEFAULT, PAGE_SIZE_MAX
from models import Category, Transaction

UNCATEGORIZED = "uncategorized"


@dataclass
class TransactionsFilter:
    """
    category_id: None = all, "uncategorized" = only rows without a category
    search:      case-insensitive substring of the merchant text
    start_date / end_date: half-open date window [start_date, end_date)
    """

    category_id: Optional[str] = None
    search: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None


# ---- Pagination helpers ----

def clamp_page(page: Optional[int], page_size: Optional[int]) -> Tuple[int, int]:
    """Out-of-range values are clamped rather than rejected."""
    page = max(int(page or 1), 1)
    page_size = int(page_size or PAGE_SIZE_DEFAULT)
    page_size = min(max(page_size, 1), PAGE_SIZE_MAX)
    return page, page_size


def paginate(query: Query, page: Optional[int], page_size: Optional[int], serialize) -> Dict[str, Any]:
    page, page_size = clamp_page(page, page_size)
    total = query.order_by(None).count()
    items = query.limit(page_size).offset((page - 1) * page_size).all()
    return {
        "items": [serialize(r) for r in items],
        "total": total,
        "page": page,
        "page_size": page_size,
        "total_pages": math.ceil(total / page_size),
    }


def _float_or_none(value) -> Optional[float]:
    return float(value) if value is not None else None


def transaction_row(row) -> Dict[str, Any]:
    """Row of (Transaction columns + category_name) -> plain dict with float amounts."""
    return {
        "id": row.id,
        "date": row.date,
        "merchant": row.merchant,
        "amount": float(row.amount),
        "balance": _float_or_none(row.balance),
        "category_id": row.category_id,
        "category_name": getattr(row, "category_name", None),
    }


def transactions_with_category(db: Session) -> Query:
    return db.query(
        Transaction.id,
        Transaction.date,
        Transaction.merchant,
        Transaction.amount,
        Transaction.balance,
        Transaction.category_id,
        Category.name.label("category_name"),
    ).outerjoin(Category, Transaction.category_id == Category.id)


def newest_first(query: Query) -> Query:
    return query.order_by(Transaction.date.desc(), Transaction.created_at.desc(), Transaction.id)


# ---- Queries ----

def apply_filter(query: Query, filter: TransactionsFilter) -> Query:
    if filter.category_id == UNCATEGORIZED:
        query = query.filter(Transaction.category_id.is_(None))
    elif filter.category_id:
        query = query.filter(Transaction.category_id == filter.category_id)

    if filter.search:
        query = query.filter(func.lower(Transaction.merchant).contains(filter.search.lower(), autoescape=True))

    if filter.start_date:
        query = query.filter(Transaction.date >= filter.start_date)
    if filter.end_date:
        query = query.filter(Transaction.date < filter.end_date)
    return query


def list_transactions(
    db: Session,
    filter: Optional[TransactionsFilter] = None,
    page: Optional[int] = 1,
    page_size: Optional[int] = PAGE_SIZE_DEFAULT,
) -> Dict[str, Any]:
    query = apply_filter(transactions_with_category(db), filter or TransactionsFilter())
    return paginate(newest_first(query), page, page_size, transaction_row)


def get_transaction(db: Session, transaction_id: str) -> Dict[str, Any]:
    row = (
        db.query(
            Transaction,
            Category.name.label("category_name"),
            Category.icon.label("category_icon"),
        )
        .outerjoin(Category, Transaction.category_id == Category.id)
        .filter(Transaction.id == transaction_id)
        .one_or_none()
    )
    if row is None:
        raise NotFoundError("transaction", transaction_id)

    tx = row.Transaction
    return {
        "id": tx.id,
        "date": tx.date,
        "merchant": tx.merchant,
        "amount": float(tx.amount),
        "balance": _float_or_none(tx.balance),
        "category_id": tx.category_id,
        "category_name": row.category_name,
        "category_icon": row.category_icon,
        "upload_id": tx.upload_id,
        "original_hash": tx.original_hash,
        "created_at": tx.created_at,
        "updated_at": tx.updated_at,
    }


def uncategorized_count(db: Session) -> int:
    return db.query(func.count(Transaction.id)).filter(Transaction.category_id.is_(None)).scalar() or 0


def uncategorized_transactions(db: Session) -> List[Dict[str, Any]]:
    rows = newest_first(transactions_with_category(db).filter(Transaction.category_id.is_(None))).all()
    return [transaction_row(r) for r in rows]


def transactions_in_range(db: Session, range_: DateRange) -> List[Dict[str, Any]]:
    """Every transaction in the range with its category name, newest first."""
    query = transactions_with_category(db).filter(
        Transaction.date >= range_.start,
        Transaction.date < range_.end,
    )
    return [transaction_row(r) for r in newest_first(query).all()]
