# models.py
# Role: SQLAlchemy ORM models for the household ledger domain.
#       Defines Transaction (one ledger entry), Category (spending bucket),
#       MerchantMapping (learned merchant pattern -> category rule) and
#       Upload (provenance record of one statement import).

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from db import Base


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Category(Base):
    """
    A spending bucket. Seeded defaults carry is_default=True.
    """

    __tablename__ = "categories"

    id = Column(String(64), primary_key=True, default=_new_id)

    # Display name, globally unique
    name = Column(String(100), nullable=False, unique=True)

    description = Column(Text, nullable=True)

    # Optional glyph shown next to the name
    icon = Column(String(16), nullable=True)

    is_default = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    transactions = relationship("Transaction", back_populates="category")
    merchant_mappings = relationship("MerchantMapping", back_populates="category")


class Upload(Base):
    """
    Provenance record for one statement import.

    transaction_count holds the number of *new* rows accepted, backfilled once
    the run has finished. Deleting an upload deletes its transactions.
    """

    __tablename__ = "uploads"

    id = Column(String(64), primary_key=True, default=_new_id)
    file_name = Column(String(255), nullable=False)

    # External user reference (from the auth collaborator)
    uploaded_by = Column(String(255), nullable=False)

    transaction_count = Column(Integer, nullable=False, default=0)
    date_range_start = Column(Date, nullable=True)
    date_range_end = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=_utcnow)

    transactions = relationship(
        "Transaction",
        back_populates="upload",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Transaction(Base):
    """
    ORM model representing one ledger entry.

    original_hash is the fingerprint of the date/amount/merchant the row was
    created with. It is never recomputed, so later edits to merchant, amount,
    date or category keep the provenance and re-importing the original row is
    still recognised as a duplicate.
    """

    __tablename__ = "transactions"

    id = Column(String(64), primary_key=True, default=_new_id)

    # Calendar day of the transaction
    date = Column(Date, nullable=False, index=True)

    # Merchant text exactly as it appeared on the statement
    merchant = Column(String, nullable=False)

    # Signed amount (negative = expense, positive = income)
    amount = Column(Numeric(12, 2), nullable=False)

    # Account balance after the transaction, when the export provides it
    balance = Column(Numeric(12, 2), nullable=True)

    category_id = Column(String(64), ForeignKey("categories.id"), nullable=True, index=True)

    # Null for manually entered transactions
    upload_id = Column(String(64), ForeignKey("uploads.id", ondelete="CASCADE"), nullable=True)

    # sha256 hex of the original date|amount|merchant; sole duplicate key
    original_hash = Column(String(64), nullable=False, unique=True, index=True)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    category = relationship("Category", back_populates="transactions")
    upload = relationship("Upload", back_populates="transactions")


class MerchantMapping(Base):
    """
    A learned or manual rule from merchant pattern to category.

    Patterns match merchant text by case-insensitive substring containment.
    A multi-merchant pattern covers several unrelated businesses and never
    carries a category: anything it matches goes to manual review.
    """

    __tablename__ = "merchant_mappings"
    __table_args__ = (
        CheckConstraint(
            "NOT is_multi_merchant OR category_id IS NULL",
            name="ck_multi_merchant_has_no_category",
        ),
    )

    id = Column(String(64), primary_key=True, default=_new_id)
    merchant_pattern = Column(String, nullable=False, unique=True)
    category_id = Column(String(64), ForeignKey("categories.id"), nullable=True)
    is_multi_merchant = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    category = relationship("Category", back_populates="merchant_mappings")
