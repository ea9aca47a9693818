# ledger/services/ingestion.py
"""
Ingestion Pipeline: raw statement rows -> ledger transactions.

Per row, in file order:
1. drop rows without merchant text, parseable date or parseable amount
   (header/footer lines share the sheet with data rows; not counted)
2. drop preliminary rows (merchant starts with the preliminary marker and
   there is no booking date); the bank re-sends them once booked
3. fingerprint the original date/amount/merchant
4. a known fingerprint counts as skipped
5. otherwise resolve a category through the merchant matcher
6. insert the transaction

The unique constraint on transactions.original_hash is the real duplicate
guard. The lookup in step 4 only avoids noisy constraint violations; an insert
that still hits the constraint (two imports racing on the same rows) is
counted as skipped, not raised.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.errors import ValidationError
from ledger.services.hashing import fingerprint
from ledger.services.matcher import MerchantMatcher
from ledger.services.statement_import import (
    DEFAULT_LAYOUT,
    SUPPORTED_EXTENSIONS,
    StatementLayout,
    parse_date,
    parse_number,
    read_statement,
)
from ledger.settings import STATEMENT_PRELIMINARY_MARKER
from models import Transaction, Upload

logger = logging.getLogger(__name__)

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class ParsedRow:
    """A statement row that passed validation, ready to be fingerprinted."""

    date: date
    merchant: str
    amount: Decimal
    balance: Optional[Decimal] = None


@dataclass
class IngestResult:
    new_count: int = 0
    skipped_count: int = 0
    categorized_count: int = 0
    transactions: List[Transaction] = field(default_factory=list)
    date_range_start: Optional[date] = None
    date_range_end: Optional[date] = None


@dataclass(frozen=True)
class ImportSummary:
    upload_id: str
    file_name: str
    new_count: int
    skipped_count: int
    categorized_count: int
    date_range_start: Optional[date]
    date_range_end: Optional[date]


# ---- Row preparation ----

def _field(row: Any, name: str):
    if isinstance(row, Mapping):
        return row.get(name)
    return getattr(row, name, None)


def to_money(value) -> Optional[Decimal]:
    if value is None:
        return None
    if isinstance(value, Decimal):
        number = value
    else:
        parsed = parse_number(value)
        if parsed is None:
            return None
        try:
            number = Decimal(str(parsed))
        except InvalidOperation:
            return None
    if not number.is_finite():
        return None
    return number.quantize(_CENTS, rounding=ROUND_HALF_UP)


def normalize_row(row: Any, preliminary_marker: str = STATEMENT_PRELIMINARY_MARKER) -> Optional[ParsedRow]:
    """
    Validate one raw row (RawRow, mapping or ParsedRow).
    Returns None for rows that must be dropped silently.
    """
    if isinstance(row, ParsedRow):
        return row

    merchant = _field(row, "merchant")
    merchant = merchant.strip() if isinstance(merchant, str) else ""
    if not merchant:
        return None

    # Preliminary transactions come back later with a booking date
    if preliminary_marker and merchant.startswith(preliminary_marker):
        if parse_date(_field(row, "booking_date")) is None:
            return None

    row_date = parse_date(_field(row, "date"))
    if row_date is None:
        return None

    amount = to_money(_field(row, "amount"))
    if amount is None:
        return None

    return ParsedRow(
        date=row_date,
        merchant=merchant,
        amount=amount,
        balance=to_money(_field(row, "balance")),
    )


def prepare_rows(rows: Iterable[Any], preliminary_marker: str = STATEMENT_PRELIMINARY_MARKER) -> List[ParsedRow]:
    prepared: List[ParsedRow] = []
    for row in rows:
        parsed = normalize_row(row, preliminary_marker)
        if parsed is not None:
            prepared.append(parsed)
    return prepared


def date_span(rows: Iterable[ParsedRow]) -> Tuple[Optional[date], Optional[date]]:
    dates = [r.date for r in rows]
    if not dates:
        return None, None
    return min(dates), max(dates)


# ---- Ledger writes ----

def hash_exists(db: Session, original_hash: str) -> bool:
    return (
        db.query(Transaction.id)
        .filter(Transaction.original_hash == original_hash)
        .first()
        is not None
    )


def ingest_rows(
    db: Session,
    rows: Iterable[Any],
    upload_id: Optional[str] = None,
    matcher: Optional[MerchantMatcher] = None,
    preliminary_marker: str = STATEMENT_PRELIMINARY_MARKER,
) -> IngestResult:
    """
    Insert every new row into the ledger. Does not commit: the caller owns
    the surrounding transaction.

    The reported date range covers every valid row, duplicates included.
    """
    prepared = prepare_rows(rows, preliminary_marker)
    matcher = matcher or MerchantMatcher.load(db)

    result = IngestResult()
    result.date_range_start, result.date_range_end = date_span(prepared)

    for row in prepared:
        original_hash = fingerprint(row.date, row.amount, row.merchant)

        if hash_exists(db, original_hash):
            result.skipped_count += 1
            continue

        category_id = matcher.resolve_category(row.merchant)

        tx = Transaction(
            date=row.date,
            merchant=row.merchant,
            amount=row.amount,
            balance=row.balance,
            category_id=category_id,
            upload_id=upload_id,
            original_hash=original_hash,
        )

        try:
            with db.begin_nested():
                db.add(tx)
        except IntegrityError:
            # Lost a race with another import of the same row
            if not hash_exists(db, original_hash):
                raise
            logger.info("Duplicate hash %s caught by unique constraint; skipping", original_hash[:12])
            result.skipped_count += 1
            continue

        if category_id:
            result.categorized_count += 1
        result.new_count += 1
        result.transactions.append(tx)

    return result


def import_statement(
    db: Session,
    file_name: Optional[str],
    content: Optional[bytes],
    uploaded_by: str,
    layout: StatementLayout = DEFAULT_LAYOUT,
) -> ImportSummary:
    """
    Full upload flow: read the export, create the Upload record, ingest rows,
    backfill the upload's transaction count, commit.

    Validation failures happen before anything is written, so a bad file never
    leaves a partial Upload behind.
    """
    if not file_name or content is None:
        raise ValidationError("No file provided", field="file")

    if not file_name.lower().endswith(SUPPORTED_EXTENSIONS):
        raise ValidationError("Please select an Excel file (.xlsx) or CSV export (.csv)", field="file")

    raw_rows = read_statement(content, file_name, layout)
    rows = prepare_rows(raw_rows, layout.preliminary_marker)
    if not rows:
        raise ValidationError("No valid transactions found in statement file", field="file")

    range_start, range_end = date_span(rows)

    try:
        upload = Upload(
            file_name=file_name,
            uploaded_by=uploaded_by,
            transaction_count=0,  # backfilled after deduplication
            date_range_start=range_start,
            date_range_end=range_end,
        )
        db.add(upload)
        db.flush()

        result = ingest_rows(db, rows, upload_id=upload.id, preliminary_marker=layout.preliminary_marker)

        upload.transaction_count = result.new_count
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "Imported %r: %d new, %d skipped, %d auto-categorized (upload %s)",
        file_name,
        result.new_count,
        result.skipped_count,
        result.categorized_count,
        upload.id,
    )

    return ImportSummary(
        upload_id=upload.id,
        file_name=file_name,
        new_count=result.new_count,
        skipped_count=result.skipped_count,
        categorized_count=result.categorized_count,
        date_range_start=range_start,
        date_range_end=range_end,
    )
