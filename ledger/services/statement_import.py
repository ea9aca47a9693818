# ledger/services/statement_import.py
"""
Bank statement readers.

Turns an uploaded export (.xlsx or .csv) into a list of RawRow objects with
the cell values left as they were found. Parsing of dates and amounts, and
all row filtering, happens in the ingestion pipeline.

The default layout matches the Handelsbanken account export:
- rows 1-9 hold the account header and column titles
- data starts on row 10
- columns: (0) empty, (1) booking date, (2) transaction date, (3) text,
  (4) amount, (5) balance
The booking date is empty for preliminary transactions.
"""

import io
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, List, Optional

import pandas as pd

from ledger.errors import ValidationError
from ledger.settings import STATEMENT_DATA_START_ROW, STATEMENT_PRELIMINARY_MARKER

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".xlsx", ".csv")


@dataclass(frozen=True)
class StatementLayout:
    """Where the ingestion fields live in a fixed-layout export (0-based columns)."""

    data_start_row: int = STATEMENT_DATA_START_ROW
    booking_date_col: Optional[int] = 1
    date_col: int = 2
    merchant_col: int = 3
    amount_col: int = 4
    balance_col: Optional[int] = 5
    preliminary_marker: str = STATEMENT_PRELIMINARY_MARKER
    csv_separator: str = ";"
    csv_encoding: str = "utf-8"


DEFAULT_LAYOUT = StatementLayout()


@dataclass
class RawRow:
    """One statement line as extracted from the file (values not yet parsed)."""

    date: Any
    merchant: Any
    amount: Any
    balance: Any = None
    booking_date: Any = None


# ---- Cell parsing ----

def _none_if_nan(x):
    if x is None:
        return None
    try:
        if pd.isna(x):
            return None
    except (TypeError, ValueError):
        return x
    return x


def parse_number(value) -> Optional[float]:
    """
    Numeric cell -> float. Accepts real numbers and strings using either
    "." or "," as decimal separator ("-65,00", "1 234,50", "−50,00").
    Returns None when the value is empty or not a number.
    """
    value = _none_if_nan(value)
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    s = str(value).strip()
    if not s:
        return None

    # Replace Unicode minus with normal minus
    s = s.replace("−", "-")
    # Drop thousand separators written as spaces
    s = s.replace(" ", "").replace(" ", "")
    if "," in s and "." in s:
        # "1.234,56" -> thousands "." and decimal ","
        s = s.replace(".", "").replace(",", ".")
    else:
        s = s.replace(",", ".")

    try:
        return float(s)
    except ValueError:
        return None


def parse_date(value) -> Optional[date]:
    """
    Date cell -> date. Accepts datetime/date/Timestamp objects and ISO-like
    strings (YYYY-MM-DD, optionally with a time part). Returns None otherwise.
    """
    value = _none_if_nan(value)
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    s = str(value).strip()
    if not s:
        return None
    parsed = pd.to_datetime(s, errors="coerce", yearfirst=True)
    if pd.isna(parsed):
        return None
    return parsed.date()


# ---- File readers ----

def _read_frame(content: bytes, file_name: str, layout: StatementLayout) -> pd.DataFrame:
    lower = file_name.lower()
    if lower.endswith(".xlsx"):
        # header=None: the export has free-form header rows above the data
        return pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=object, engine="openpyxl")
    text = content.decode(layout.csv_encoding)
    # Header lines are shorter than data lines; name every column up front
    # so the tokenizer accepts ragged rows.
    width = max((line.count(layout.csv_separator) for line in text.splitlines()), default=0) + 1
    return pd.read_csv(
        io.StringIO(text),
        header=None,
        names=list(range(width)),
        dtype=object,
        sep=layout.csv_separator,
        skip_blank_lines=False,
    )


def _cell(row: tuple, col: Optional[int]):
    if col is None or col >= len(row):
        return None
    return _none_if_nan(row[col])


def read_statement(content: bytes, file_name: str, layout: StatementLayout = DEFAULT_LAYOUT) -> List[RawRow]:
    """
    Read all data rows of a statement export.

    Raises ValidationError when the file cannot be opened as a spreadsheet/CSV.
    """
    try:
        df = _read_frame(content, file_name, layout)
    except Exception as e:
        logger.warning("Failed to parse statement file %r: %r", file_name, e)
        raise ValidationError("Failed to parse statement file", field="file") from e

    # pandas row 0 is spreadsheet row 1
    data = df.iloc[max(layout.data_start_row - 1, 0):]
    data = data.dropna(how="all")

    rows: List[RawRow] = []
    for values in data.itertuples(index=False, name=None):
        rows.append(
            RawRow(
                date=_cell(values, layout.date_col),
                merchant=_cell(values, layout.merchant_col),
                amount=_cell(values, layout.amount_col),
                balance=_cell(values, layout.balance_col),
                booking_date=_cell(values, layout.booking_date_col),
            )
        )

    logger.debug("Read %d candidate rows from %r", len(rows), file_name)
    return rows
