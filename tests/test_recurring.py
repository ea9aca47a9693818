from dataclasses import replace
from datetime import date, timedelta

from conftest import make_category, make_tx
from ledger.services.recurring import DEFAULT_POLICY, amounts_similar, detect_upcoming


def test_amount_tolerance():
    assert amounts_similar(-100, -115, 0.2)
    assert not amounts_similar(-100, -130, 0.2)
    assert amounts_similar(0, 0, 0.2)


def test_yearly_expense_within_tolerance_is_predicted(db):
    d = date(2024, 3, 1)
    make_tx(db, d, "Folksam Insurance", -100)
    make_tx(db, d + timedelta(days=366), "FOLKSAM INSURANCE", -115)

    today = d + timedelta(days=731 - 30)
    upcoming = detect_upcoming(db, today=today)

    assert len(upcoming) == 1
    item = upcoming[0]
    assert item.merchant == "FOLKSAM INSURANCE"
    assert item.expected_date == d + timedelta(days=366 + 365)
    assert item.days_until == 30
    assert item.expected_amount == 107.5


def test_amount_outside_tolerance_is_ignored(db):
    d = date(2024, 3, 1)
    make_tx(db, d, "Gym", -100)
    make_tx(db, d + timedelta(days=365), "Gym", -130)

    assert detect_upcoming(db, today=d + timedelta(days=700)) == []


def test_gap_must_be_roughly_a_year(db):
    d = date(2024, 3, 1)
    make_tx(db, d, "Magazine", -100)
    make_tx(db, d + timedelta(days=200), "Magazine", -100)

    assert detect_upcoming(db, today=d + timedelta(days=500)) == []


def test_first_qualifying_older_row_is_used(db):
    recent = date(2025, 6, 1)
    make_tx(db, recent, "Insurance", -200)
    # too close, skipped
    make_tx(db, recent - timedelta(days=100), "Insurance", -200)
    # a year older but amount way off, skipped
    make_tx(db, recent - timedelta(days=360), "Insurance", -900)
    # qualifying
    make_tx(db, recent - timedelta(days=370), "Insurance", -180)

    upcoming = detect_upcoming(db, today=recent + timedelta(days=340))
    assert len(upcoming) == 1
    assert upcoming[0].expected_amount == 190.0


def test_horizon_and_past_due_are_excluded(db):
    d = date(2024, 3, 1)
    make_tx(db, d, "Netflix yearly", -1000)
    make_tx(db, d + timedelta(days=365), "Netflix yearly", -1000)
    expected = d + timedelta(days=730)

    assert detect_upcoming(db, today=expected - timedelta(days=61)) == []
    assert len(detect_upcoming(db, today=expected - timedelta(days=60))) == 1
    assert detect_upcoming(db, today=expected) == []


def test_income_is_ignored_and_results_sorted(db):
    category = make_category(db, "Housing")
    d = date(2024, 3, 1)
    make_tx(db, d, "Bonus", 5000)
    make_tx(db, d + timedelta(days=365), "Bonus", 5000)
    make_tx(db, d + timedelta(days=10), "Home insurance", -300, category_id=category.id)
    make_tx(db, d + timedelta(days=375), "Home insurance", -310, category_id=category.id)
    make_tx(db, d, "Car tax", -900)
    make_tx(db, d + timedelta(days=365), "Car tax", -950)

    upcoming = detect_upcoming(db, today=d + timedelta(days=700))

    assert [u.merchant for u in upcoming] == ["Car tax", "Home insurance"]
    assert upcoming[1].category_name == "Housing"


def test_policy_thresholds_can_be_overridden(db):
    d = date(2024, 3, 1)
    make_tx(db, d, "Gym", -100)
    make_tx(db, d + timedelta(days=365), "Gym", -130)

    loose = replace(DEFAULT_POLICY, amount_tolerance=0.3)
    assert len(detect_upcoming(db, today=d + timedelta(days=700), policy=loose)) == 1
