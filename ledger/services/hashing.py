# ledger/services/hashing.py
#
# Canonical transaction fingerprint used for duplicate detection.
# The rendering mirrors what the database produces when casting the same
# values to text (timestamp -> "YYYY-MM-DD 00:00:00", numeric(12,2) -> "-65.00"),
# so hashes computed here match hashes already stored for historical data.

import hashlib
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Amount = Union[Decimal, float, int, str]

_CENTS = Decimal("0.01")


def format_date_for_hash(value: Union[date, datetime]) -> str:
    if isinstance(value, datetime):
        value = value.date()
    return f"{value.year:04d}-{value.month:02d}-{value.day:02d} 00:00:00"


def format_amount_for_hash(amount: Amount) -> str:
    if not isinstance(amount, Decimal):
        # str() first so floats like 0.1 keep their shortest repr
        amount = Decimal(str(amount))
    quantized = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    if quantized == 0:
        # numeric has no negative zero
        quantized = abs(quantized)
    return str(quantized)


def fingerprint(value_date: Union[date, datetime], amount: Amount, merchant: str) -> str:
    """
    sha256 hex of "{date}|{amount}|{merchant}" computed from the values a
    transaction was originally imported with.
    """
    payload = f"{format_date_for_hash(value_date)}|{format_amount_for_hash(amount)}|{merchant}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
