from datetime import date

import pytest

from conftest import make_category, make_mapping, make_tx
from ledger.errors import NotFoundError
from ledger.services.categorization import (
    categorize_transaction,
    mark_multi_merchant,
    multi_merchant_patterns,
    set_transaction_category,
    toggle_multi_merchant,
    unmark_multi_merchant,
    update_merchant_category,
)
from models import MerchantMapping, Transaction


def category_of(db, tx_id):
    db.expire_all()
    return db.get(Transaction, tx_id).category_id


def test_categorize_propagates_to_uncategorized_same_merchant_only(db):
    groceries = make_category(db, "Groceries")
    other = make_category(db, "Other")

    t1 = make_tx(db, date(2026, 1, 5), "ICA Kvantum", -100)
    t2 = make_tx(db, date(2026, 1, 12), "ICA Kvantum", -80)
    t3 = make_tx(db, date(2026, 1, 19), "ICA Kvantum", -60, category_id=other.id)
    t4 = make_tx(db, date(2026, 1, 19), "ICA Kvantum Lund", -40)

    result = categorize_transaction(db, t1.id, groceries.id)

    assert result.updated_count == 2
    assert not result.is_multi_merchant
    assert category_of(db, t1.id) == groceries.id
    assert category_of(db, t2.id) == groceries.id
    # already categorized: untouched
    assert category_of(db, t3.id) == other.id
    # different merchant text: untouched
    assert category_of(db, t4.id) is None

    mapping = db.query(MerchantMapping).one()
    assert (mapping.merchant_pattern, mapping.category_id, mapping.is_multi_merchant) == (
        "ICA Kvantum",
        groceries.id,
        False,
    )


def test_categorize_upserts_existing_mapping(db):
    groceries = make_category(db, "Groceries")
    other = make_category(db, "Other")
    make_mapping(db, "ICA Kvantum", other.id)
    tx = make_tx(db, date(2026, 1, 5), "ICA Kvantum", -100)

    categorize_transaction(db, tx.id, groceries.id)

    db.expire_all()
    mappings = db.query(MerchantMapping).all()
    assert len(mappings) == 1
    assert mappings[0].category_id == groceries.id


def test_categorize_leaves_already_categorized_rows_alone(db):
    groceries = make_category(db, "Groceries")
    other = make_category(db, "Other")
    tx = make_tx(db, date(2026, 1, 5), "Coop Forum", -100, category_id=other.id)
    pending = make_tx(db, date(2026, 1, 9), "Coop Forum", -70)

    result = categorize_transaction(db, tx.id, groceries.id)

    assert result.updated_count == 1
    assert category_of(db, tx.id) == other.id
    assert category_of(db, pending.id) == groceries.id
    # the mapping is still learned
    assert db.query(MerchantMapping).one().category_id == groceries.id

    assert categorize_transaction(db, tx.id, groceries.id).updated_count == 0


def test_multi_merchant_updates_only_the_one_row(db):
    shopping = make_category(db, "Shopping")
    make_mapping(db, "paypal", is_multi_merchant=True)
    t1 = make_tx(db, date(2026, 1, 5), "PAYPAL *STEAM", -200)
    t2 = make_tx(db, date(2026, 1, 6), "PAYPAL *STEAM", -300)

    result = categorize_transaction(db, t1.id, shopping.id)

    assert result.is_multi_merchant
    assert result.updated_count == 1
    assert category_of(db, t1.id) == shopping.id
    assert category_of(db, t2.id) is None
    # nothing learned
    assert db.query(MerchantMapping).count() == 1


def test_categorize_checks_category_then_transaction(db):
    category = make_category(db, "Groceries")
    tx = make_tx(db, date(2026, 1, 5), "ICA", -10)

    with pytest.raises(NotFoundError) as exc:
        categorize_transaction(db, "missing-tx", "missing-cat")
    assert exc.value.entity == "category"

    with pytest.raises(NotFoundError) as exc:
        categorize_transaction(db, "missing-tx", category.id)
    assert exc.value.entity == "transaction"
    assert exc.value.message == "Transaction not found"

    assert category_of(db, tx.id) is None


def test_set_transaction_category_never_learns(db):
    category = make_category(db, "Groceries")
    t1 = make_tx(db, date(2026, 1, 5), "ICA", -10)
    t2 = make_tx(db, date(2026, 1, 6), "ICA", -20)

    set_transaction_category(db, t1.id, category.id)
    assert category_of(db, t1.id) == category.id
    assert category_of(db, t2.id) is None
    assert db.query(MerchantMapping).count() == 0

    set_transaction_category(db, t1.id, None)
    assert category_of(db, t1.id) is None


def test_mark_and_unmark_multi_merchant(db):
    category = make_category(db, "Shopping")
    make_mapping(db, "Klarna", category.id)
    tx = make_tx(db, date(2026, 1, 5), "Klarna", -99, category_id=category.id)

    assert mark_multi_merchant(db, tx.id) == "Klarna"
    db.expire_all()
    mapping = db.query(MerchantMapping).one()
    assert mapping.is_multi_merchant and mapping.category_id is None
    # the triggering transaction keeps its category
    assert category_of(db, tx.id) == category.id
    assert multi_merchant_patterns(db) == ["Klarna"]

    unmark_multi_merchant(db, tx.id)
    db.expire_all()
    assert db.query(MerchantMapping).count() == 0


def test_mapping_management(db):
    groceries = make_category(db, "Groceries")
    other = make_category(db, "Other")
    make_mapping(db, "coop", groceries.id)

    mapping = update_merchant_category(db, "coop", other.id)
    assert mapping.category_id == other.id

    mapping = toggle_multi_merchant(db, "coop", True)
    assert mapping.is_multi_merchant and mapping.category_id is None

    mapping = toggle_multi_merchant(db, "coop", False)
    assert not mapping.is_multi_merchant and mapping.category_id is None

    with pytest.raises(NotFoundError):
        update_merchant_category(db, "unknown", other.id)
    with pytest.raises(NotFoundError):
        update_merchant_category(db, "coop", "missing-cat")
