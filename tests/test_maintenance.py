import json
from datetime import date

import pytest

from conftest import make_category, make_mapping, make_tx
from ledger.errors import ConstraintError, NotFoundError, ValidationError
from ledger.services import categories, transactions
from ledger.services.categories import DEFAULT_CATEGORIES, seed_default_categories
from ledger.services.hashing import fingerprint
from ledger.services.ingestion import ingest_rows
from ledger.services.suggestions import CategorySuggestion, parse_suggestions, suggest_categories
from models import Category, MerchantMapping, Transaction


# ---- transactions ----

def test_manual_transaction_gets_hash_and_no_upload(db):
    tx = transactions.create_transaction(db, date(2026, 1, 5), " Cash at market ", -45.5)
    assert tx.upload_id is None
    assert tx.merchant == "Cash at market"
    assert tx.original_hash == fingerprint(date(2026, 1, 5), -45.5, "Cash at market")

    # importing the same row later is a duplicate
    result = ingest_rows(db, [{"date": date(2026, 1, 5), "merchant": "Cash at market", "amount": -45.5}])
    assert result.skipped_count == 1


def test_manual_duplicate_is_rejected(db):
    transactions.create_transaction(db, date(2026, 1, 5), "ICA", -10)
    with pytest.raises(ValidationError, match="already exists"):
        transactions.create_transaction(db, date(2026, 1, 5), "ICA", -10)


def test_manual_transaction_validation(db):
    with pytest.raises(ValidationError):
        transactions.create_transaction(db, date(2026, 1, 5), "   ", -10)
    with pytest.raises(ValidationError):
        transactions.create_transaction(db, date(2026, 1, 5), "ICA", "abc")
    with pytest.raises(NotFoundError):
        transactions.create_transaction(db, date(2026, 1, 5), "ICA", -10, category_id="missing")


def test_update_keeps_original_hash(db):
    category = make_category(db, "Groceries")
    tx = make_tx(db, date(2026, 1, 5), "ICA", -10)
    original_hash = tx.original_hash

    updated = transactions.update_transaction_detail(
        db, tx.id, merchant="ICA Maxi", amount=-12, category_id=category.id
    )
    assert (updated.merchant, float(updated.amount), updated.category_id) == ("ICA Maxi", -12.0, category.id)
    assert updated.original_hash == original_hash

    cleared = transactions.update_transaction_detail(db, tx.id, category_id=None)
    assert cleared.category_id is None
    assert cleared.merchant == "ICA Maxi"


def test_delete_transaction(db):
    tx = make_tx(db, date(2026, 1, 5), "ICA", -10)
    transactions.delete_transaction(db, tx.id)
    assert db.query(Transaction).count() == 0
    with pytest.raises(NotFoundError):
        transactions.delete_transaction(db, tx.id)


# ---- categories ----

def test_create_and_update_category(db):
    category = categories.create_category(db, "Pets", icon="🐶")
    assert not category.is_default

    with pytest.raises(ValidationError):
        categories.create_category(db, "Pets")

    renamed = categories.update_category(db, category.id, name="Pets & Animals")
    assert renamed.name == "Pets & Animals"
    assert renamed.icon == "🐶"


def test_delete_category_rules(db):
    only_default = make_category(db, "Other", is_default=True)
    used = make_category(db, "Groceries")
    unused = make_category(db, "Pets")
    make_tx(db, date(2026, 1, 5), "ICA", -10, category_id=used.id)
    make_mapping(db, "zoo", unused.id)

    with pytest.raises(ConstraintError) as exc:
        categories.delete_category(db, only_default.id)
    assert exc.value.constraint == "is_default"

    with pytest.raises(ConstraintError) as exc:
        categories.delete_category(db, used.id)
    assert exc.value.constraint == "has_transactions"

    categories.delete_category(db, unused.id)
    assert db.get(Category, unused.id) is None
    assert db.query(MerchantMapping).count() == 0

    with pytest.raises(NotFoundError):
        categories.delete_category(db, "missing")


def test_default_category_can_go_while_another_default_remains(db):
    first = make_category(db, "Other", is_default=True)
    make_category(db, "Income", is_default=True)
    categories.delete_category(db, first.id)
    assert db.query(Category).count() == 1


def test_seed_is_idempotent(db):
    seeded = seed_default_categories(db)
    assert len(seeded) == len(DEFAULT_CATEGORIES)
    assert all(c.is_default for c in seeded)

    seed_default_categories(db)
    assert db.query(Category).count() == len(DEFAULT_CATEGORIES)


# ---- suggestions ----

TXS = [
    {"id": "t1", "merchant": "ICA Kvantum", "amount": -100.0},
    {"id": "t2", "merchant": "SL Access", "amount": -40.0},
]
CATS = [
    {"id": "c_food", "name": "Groceries", "description": "Food"},
    {"id": "c_travel", "name": "Transport", "description": None},
]


def test_suggestions_are_validated_against_batch_and_categories():
    def complete(system, user):
        assert '"c_food": Groceries' in system
        assert 'id="t1"' in user
        return "```json\n" + json.dumps(
            {
                "suggestions": [
                    {"transaction_id": "t1", "category_id": "c_food", "confidence": "high"},
                    {"transaction_id": "t2", "category_id": "c_unknown", "confidence": "low"},
                    {"transaction_id": "t9", "category_id": "c_food", "confidence": "high"},
                    {"transaction_id": "t2", "category_id": None, "confidence": "medium"},
                ]
            }
        ) + "\n```"

    result = suggest_categories(TXS, CATS, complete=complete)
    assert result == [
        CategorySuggestion("t1", "c_food", "high"),
        CategorySuggestion("t2", None, "medium"),
    ]


def test_suggestions_are_batched_and_failures_skipped():
    calls = []

    def complete(system, user):
        calls.append(user)
        if len(calls) == 1:
            raise RuntimeError("rate limited")
        return '{"suggestions": [{"transaction_id": "t2", "category_id": "c_travel", "confidence": "medium"}]}'

    result = suggest_categories(TXS, CATS, complete=complete, batch_size=1)
    assert len(calls) == 2
    assert result == [CategorySuggestion("t2", "c_travel", "medium")]


def test_unparseable_output_yields_nothing():
    assert parse_suggestions("I think groceries", {"t1"}, {"c_food"}) == []
    assert suggest_categories([], CATS, complete=lambda s, u: "") == []


def test_suggestions_disabled_without_feature_flag(monkeypatch):
    monkeypatch.setattr("ledger.services.suggestions.AUTO_CATEGORIZE_AI", False)
    assert suggest_categories(TXS, CATS) == []
