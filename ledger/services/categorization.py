# ledger/services/categorization.py
"""
Categorization Engine.

Applies the user's category choices to the ledger and keeps the merchant
mapping rule base in sync with them. Each public function commits exactly once
(or rolls back), so bulk propagation and the learned mapping land together.

Multi-merchant status is always re-derived from the current mappings: a
merchant is multi-merchant when any multi-merchant pattern occurs in its text.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy.orm import Session

from ledger.errors import NotFoundError, ValidationError
from ledger.services.matcher import MerchantMatcher
from models import Category, MerchantMapping, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategorizeResult:
    transaction_id: str
    category_id: str
    merchant: str
    is_multi_merchant: bool
    updated_count: int


# ---- Lookups ----

def get_category_or_404(db: Session, category_id: str) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("category", category_id)
    return category


def get_transaction_or_404(db: Session, transaction_id: str) -> Transaction:
    tx = db.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError("transaction", transaction_id)
    return tx


def get_mapping_by_pattern(db: Session, pattern: str) -> Optional[MerchantMapping]:
    return db.query(MerchantMapping).filter(MerchantMapping.merchant_pattern == pattern).one_or_none()


def multi_merchant_patterns(db: Session) -> List[str]:
    rows = (
        db.query(MerchantMapping.merchant_pattern)
        .filter(MerchantMapping.is_multi_merchant.is_(True))
        .order_by(MerchantMapping.merchant_pattern)
        .all()
    )
    return [r.merchant_pattern for r in rows]


def is_multi_merchant(db: Session, merchant: str) -> bool:
    return MerchantMatcher.load(db).is_multi_merchant(merchant)


def _require_id(value: Optional[str], field: str) -> str:
    if not value or not str(value).strip():
        raise ValidationError(f"Invalid input: {field} is required", field=field)
    return str(value).strip()


# ---- Transaction-level operations ----

def categorize_transaction(db: Session, transaction_id: str, category_id: str) -> CategorizeResult:
    """
    Assign `category_id` to a transaction and learn from it.

    - multi-merchant: only this transaction changes, nothing is learned
    - otherwise: every still-uncategorized transaction with exactly the same
      merchant text gets the category (rows the user already categorized are
      left alone), and the mapping for that merchant text is upserted
    """
    transaction_id = _require_id(transaction_id, "transaction_id")
    category_id = _require_id(category_id, "category_id")

    try:
        get_category_or_404(db, category_id)
        tx = get_transaction_or_404(db, transaction_id)
        merchant = tx.merchant
        multi = is_multi_merchant(db, merchant)

        if multi:
            tx.category_id = category_id
            updated_count = 1
        else:
            # Only uncategorized rows follow; that includes the triggering row
            # when it has no category yet. Use set_transaction_category to
            # correct a row that already has one.
            updated_count = (
                db.query(Transaction)
                .filter(
                    Transaction.merchant == merchant,
                    Transaction.category_id.is_(None),
                )
                .update({Transaction.category_id: category_id}, synchronize_session=False)
            )

            mapping = get_mapping_by_pattern(db, merchant)
            if mapping is None:
                db.add(
                    MerchantMapping(
                        merchant_pattern=merchant,
                        category_id=category_id,
                        is_multi_merchant=False,
                    )
                )
            else:
                mapping.category_id = category_id
                mapping.is_multi_merchant = False

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Categorized %s as %s (merchant=%r, multi=%s, updated=%d)",
        transaction_id,
        category_id,
        merchant,
        multi,
        updated_count,
    )
    return CategorizeResult(
        transaction_id=transaction_id,
        category_id=category_id,
        merchant=merchant,
        is_multi_merchant=multi,
        updated_count=updated_count,
    )


def set_transaction_category(db: Session, transaction_id: str, category_id: Optional[str]) -> Transaction:
    """
    One-off correction: set (or clear) the category of exactly one transaction.
    Never propagates and never touches the merchant mappings.
    """
    transaction_id = _require_id(transaction_id, "transaction_id")
    try:
        tx = get_transaction_or_404(db, transaction_id)
        if category_id is not None:
            get_category_or_404(db, category_id)
        tx.category_id = category_id
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(tx)
    return tx


def mark_multi_merchant(db: Session, transaction_id: str) -> str:
    """
    Flag the transaction's merchant text as multi-merchant. Any existing
    mapping for that text is replaced. The transaction itself is not touched;
    only future matches go to manual review. Returns the merchant text.
    """
    transaction_id = _require_id(transaction_id, "transaction_id")
    try:
        tx = get_transaction_or_404(db, transaction_id)
        merchant = tx.merchant

        db.query(MerchantMapping).filter(MerchantMapping.merchant_pattern == merchant).delete(
            synchronize_session=False
        )
        db.add(MerchantMapping(merchant_pattern=merchant, category_id=None, is_multi_merchant=True))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Marked %r as multi-merchant", merchant)
    return merchant


def unmark_multi_merchant(db: Session, transaction_id: str) -> str:
    """
    Remove the mapping for the transaction's merchant text entirely; the next
    categorization starts from scratch. Returns the merchant text.
    """
    transaction_id = _require_id(transaction_id, "transaction_id")
    try:
        tx = get_transaction_or_404(db, transaction_id)
        merchant = tx.merchant
        db.query(MerchantMapping).filter(MerchantMapping.merchant_pattern == merchant).delete(
            synchronize_session=False
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("Unmarked %r as multi-merchant", merchant)
    return merchant


# ---- Mapping-level operations ----

def update_merchant_category(db: Session, merchant_pattern: str, category_id: Optional[str]) -> MerchantMapping:
    """Point an existing mapping at another category (None clears it)."""
    merchant_pattern = _require_id(merchant_pattern, "merchant_pattern")
    try:
        mapping = get_mapping_by_pattern(db, merchant_pattern)
        if mapping is None:
            raise NotFoundError("merchant_mapping", merchant_pattern, "Merchant mapping not found")
        if category_id is not None:
            get_category_or_404(db, category_id)
            mapping.is_multi_merchant = False
        mapping.category_id = category_id
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(mapping)
    return mapping


def toggle_multi_merchant(db: Session, merchant_pattern: str, is_multi: bool) -> MerchantMapping:
    """
    Flip the multi-merchant flag of an existing mapping. Marking clears the
    category; unmarking keeps the mapping without a category.
    """
    merchant_pattern = _require_id(merchant_pattern, "merchant_pattern")
    try:
        mapping = get_mapping_by_pattern(db, merchant_pattern)
        if mapping is None:
            raise NotFoundError("merchant_mapping", merchant_pattern, "Merchant mapping not found")
        if is_multi:
            mapping.category_id = None
        mapping.is_multi_merchant = bool(is_multi)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(mapping)
    return mapping
