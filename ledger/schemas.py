# ledger/schemas.py
# Role: Pydantic request/response models for the JSON API.

import datetime as dt
from typing import Literal, Optional

from pydantic import BaseModel, Field


# -------------------------------------------------------------------
# Transactions
# -------------------------------------------------------------------

class TransactionOut(BaseModel):
    id: str
    date: dt.date
    merchant: str
    amount: float
    balance: float | None = None
    category_id: str | None = None
    upload_id: str | None = None
    original_hash: str
    created_at: dt.datetime
    updated_at: dt.datetime

    class Config:
        from_attributes = True


class TransactionCreate(BaseModel):
    date: dt.date
    merchant: str = Field(min_length=1)
    amount: float
    balance: float | None = None
    category_id: str | None = None


class TransactionUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    date: Optional[dt.date] = None
    merchant: Optional[str] = Field(default=None, min_length=1)
    amount: Optional[float] = None
    category_id: Optional[str] = None


class CategorizeRequest(BaseModel):
    category_id: str = Field(min_length=1)


class CategorizeOut(BaseModel):
    transaction_id: str
    category_id: str
    merchant: str
    is_multi_merchant: bool
    updated_count: int

    class Config:
        from_attributes = True


class CategoryAssign(BaseModel):
    category_id: str | None = None


class MultiMerchantOut(BaseModel):
    merchant: str
    is_multi_merchant: bool


class SuggestionsRequest(BaseModel):
    """Transactions to get suggestions for; all uncategorized ones when omitted."""

    transaction_ids: list[str] | None = None


class SuggestionOut(BaseModel):
    transaction_id: str
    category_id: str | None = None
    confidence: Literal["high", "medium", "low"]

    class Config:
        from_attributes = True


# -------------------------------------------------------------------
# Upload
# -------------------------------------------------------------------

class ImportSummaryOut(BaseModel):
    upload_id: str
    file_name: str
    new_count: int
    skipped_count: int
    categorized_count: int
    date_range_start: dt.date | None = None
    date_range_end: dt.date | None = None

    class Config:
        from_attributes = True


# -------------------------------------------------------------------
# Categories & merchants
# -------------------------------------------------------------------

class CategoryOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    icon: str | None = None
    is_default: bool

    class Config:
        from_attributes = True


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    icon: str | None = None
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    icon: str | None = None
    description: str | None = None


class MerchantMappingOut(BaseModel):
    id: str
    merchant_pattern: str
    category_id: str | None = None
    is_multi_merchant: bool

    class Config:
        from_attributes = True


class MerchantCategoryUpdate(BaseModel):
    merchant_pattern: str = Field(min_length=1)
    category_id: str | None = None


class MerchantMultiToggle(BaseModel):
    merchant_pattern: str = Field(min_length=1)
    is_multi_merchant: bool


# -------------------------------------------------------------------
# Dashboard
# -------------------------------------------------------------------

class UpcomingExpenseOut(BaseModel):
    merchant: str
    expected_amount: float
    expected_date: dt.date
    days_until: int
    category_id: str | None = None
    category_name: str | None = None

    class Config:
        from_attributes = True
