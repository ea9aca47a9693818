# ledger/services/transactions.py
#
# Manual ledger maintenance: create, edit and delete single transactions.
#
# Manual entries get upload_id=None and a fingerprint computed from what the
# user typed, so a later statement import of the same row is recognised as a
# duplicate. Edits never touch original_hash.

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.errors import ValidationError
from ledger.services.categorization import get_category_or_404, get_transaction_or_404
from ledger.services.hashing import fingerprint
from ledger.services.ingestion import hash_exists, to_money
from models import Transaction

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "A transaction with these details already exists"

# Sentinel for "field not supplied" in partial updates
_UNSET = object()


def _clean_merchant(merchant) -> str:
    merchant = merchant.strip() if isinstance(merchant, str) else ""
    if not merchant:
        raise ValidationError("Invalid transaction data: merchant is required", field="merchant")
    return merchant


def _clean_amount(amount, field: str = "amount") -> Decimal:
    money = to_money(amount)
    if money is None:
        raise ValidationError(f"Invalid transaction data: {field} must be a number", field=field)
    return money


def _clean_date(value) -> date:
    if not isinstance(value, date):
        raise ValidationError("Invalid transaction data: date is required", field="date")
    if isinstance(value, datetime):
        return value.date()
    return value


def create_transaction(
    db: Session,
    date: date,
    merchant: str,
    amount,
    balance=None,
    category_id: Optional[str] = None,
) -> Transaction:
    tx_date = _clean_date(date)
    merchant = _clean_merchant(merchant)
    money = _clean_amount(amount)
    balance = _clean_amount(balance, "balance") if balance is not None else None

    try:
        if category_id is not None:
            get_category_or_404(db, category_id)

        original_hash = fingerprint(tx_date, money, merchant)
        if hash_exists(db, original_hash):
            raise ValidationError(DUPLICATE_MESSAGE, field="duplicate")

        tx = Transaction(
            date=tx_date,
            merchant=merchant,
            amount=money,
            balance=balance,
            category_id=category_id,
            upload_id=None,
            original_hash=original_hash,
        )
        db.add(tx)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ValidationError(DUPLICATE_MESSAGE, field="duplicate") from e
    except Exception:
        db.rollback()
        raise

    db.refresh(tx)
    logger.info("Created manual transaction %s (%s, %s)", tx.id, merchant, money)
    return tx


def update_transaction_detail(
    db: Session,
    transaction_id: str,
    date=_UNSET,
    merchant=_UNSET,
    amount=_UNSET,
    category_id=_UNSET,
) -> Transaction:
    """
    Edit the user-visible fields of one transaction. Only supplied fields
    change; category_id=None clears the category. original_hash is kept.
    """
    try:
        tx = get_transaction_or_404(db, transaction_id)

        if date is not _UNSET:
            tx.date = _clean_date(date)
        if merchant is not _UNSET:
            tx.merchant = _clean_merchant(merchant)
        if amount is not _UNSET:
            tx.amount = _clean_amount(amount)
        if category_id is not _UNSET:
            if category_id is not None:
                get_category_or_404(db, category_id)
            tx.category_id = category_id

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(tx)
    return tx


def delete_transaction(db: Session, transaction_id: str) -> None:
    try:
        tx = get_transaction_or_404(db, transaction_id)
        db.delete(tx)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Deleted transaction %s", transaction_id)
