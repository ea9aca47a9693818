# routes_transactions.py
"""
Routes related to transactions: listing, detail, manual entry/edit/delete,
categorization and the review queue.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ledger.auth import AuthSession, require_session
from ledger.deps import get_db
from ledger.errors import ValidationError
from ledger.schemas import (
    CategorizeOut,
    CategorizeRequest,
    CategoryAssign,
    MultiMerchantOut,
    SuggestionOut,
    SuggestionsRequest,
    TransactionCreate,
    TransactionOut,
    TransactionUpdate,
)
from ledger.services import categorization, transactions
from ledger.services.category_queries import all_categories
from ledger.services.suggestions import suggest_categories
from ledger.services.transaction_queries import (
    TransactionsFilter,
    get_transaction,
    list_transactions,
    uncategorized_count,
    uncategorized_transactions,
)
from ledger.settings import PAGE_SIZE_DEFAULT

router = APIRouter(prefix="/transactions", tags=["transactions"])


# -------------------------------------------------------------------
# Reads
# -------------------------------------------------------------------

@router.get("")
def transactions_list(
    category: str | None = Query(None, description='Category id, or "uncategorized"'),
    search: str | None = Query(None),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None, description="Exclusive upper bound"),
    page: int = Query(1),
    page_size: int = Query(PAGE_SIZE_DEFAULT),
    db: Session = Depends(get_db),
):
    search = (search or "").strip() or None
    filter = TransactionsFilter(category_id=category, search=search, start_date=start_date, end_date=end_date)
    return list_transactions(db, filter, page, page_size)


@router.get("/uncategorized")
def transactions_uncategorized(db: Session = Depends(get_db)):
    """The review queue: every transaction still without a category, newest first."""
    items = uncategorized_transactions(db)
    return {"count": uncategorized_count(db), "items": items}


@router.get("/{transaction_id}")
def transaction_detail(transaction_id: str, db: Session = Depends(get_db)):
    return get_transaction(db, transaction_id)


# -------------------------------------------------------------------
# Manual entry / edit / delete
# -------------------------------------------------------------------

@router.post("", response_model=TransactionOut, status_code=201)
def transaction_create(
    payload: TransactionCreate,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    return transactions.create_transaction(
        db,
        date=payload.date,
        merchant=payload.merchant,
        amount=payload.amount,
        balance=payload.balance,
        category_id=payload.category_id,
    )


@router.patch("/{transaction_id}", response_model=TransactionOut)
def transaction_update(
    transaction_id: str,
    payload: TransactionUpdate,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    changes = payload.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("Nothing to update", field="input")
    return transactions.update_transaction_detail(db, transaction_id, **changes)


@router.delete("/{transaction_id}", status_code=204)
def transaction_delete(
    transaction_id: str,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    transactions.delete_transaction(db, transaction_id)
    return Response(status_code=204)


# -------------------------------------------------------------------
# Categorization
# -------------------------------------------------------------------

@router.post("/{transaction_id}/categorize", response_model=CategorizeOut)
def transaction_categorize(
    transaction_id: str,
    payload: CategorizeRequest,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    """Categorize and learn: same-merchant uncategorized rows follow, mapping is stored."""
    return categorization.categorize_transaction(db, transaction_id, payload.category_id)


@router.put("/{transaction_id}/category", response_model=TransactionOut)
def transaction_set_category(
    transaction_id: str,
    payload: CategoryAssign,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    """One-off correction of a single row; nothing is learned."""
    return categorization.set_transaction_category(db, transaction_id, payload.category_id)


@router.post("/{transaction_id}/multi-merchant", response_model=MultiMerchantOut)
def transaction_mark_multi_merchant(
    transaction_id: str,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    merchant = categorization.mark_multi_merchant(db, transaction_id)
    return MultiMerchantOut(merchant=merchant, is_multi_merchant=True)


@router.delete("/{transaction_id}/multi-merchant", response_model=MultiMerchantOut)
def transaction_unmark_multi_merchant(
    transaction_id: str,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    merchant = categorization.unmark_multi_merchant(db, transaction_id)
    return MultiMerchantOut(merchant=merchant, is_multi_merchant=False)


@router.post("/suggestions", response_model=List[SuggestionOut])
def transaction_suggestions(
    payload: SuggestionsRequest | None = None,
    session: AuthSession = Depends(require_session),
    db: Session = Depends(get_db),
):
    """
    Advisory AI suggestions for uncategorized transactions. Nothing is saved;
    confirm a suggestion through /transactions/{id}/categorize.
    """
    items = uncategorized_transactions(db)
    if payload is not None and payload.transaction_ids is not None:
        wanted = set(payload.transaction_ids)
        items = [t for t in items if t["id"] in wanted]
    return suggest_categories(items, all_categories(db))
