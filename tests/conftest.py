from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from db import Base, build_engine
from ledger.auth import AuthSession, get_session_resolver
from ledger.deps import get_db
from ledger.services.hashing import fingerprint
from main import app
from models import Category, MerchantMapping, Transaction

TEST_TOKEN = "test-token"
AUTH = {"Authorization": f"Bearer {TEST_TOKEN}"}


@pytest.fixture()
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture()
def db(session_factory):
    session = session_factory(expire_on_commit=False)
    yield session
    session.close()


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_resolver():
        return lambda token: AuthSession(user_id="tester") if token == TEST_TOKEN else None

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_resolver] = override_resolver
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ---- data helpers ----

def make_category(db, name="Groceries", is_default=False, icon=None):
    category = Category(name=name, is_default=is_default, icon=icon)
    db.add(category)
    db.commit()
    return category


def make_tx(db, day, merchant, amount, category_id=None, upload_id=None):
    amount = Decimal(str(amount)).quantize(Decimal("0.01"))
    tx = Transaction(
        date=day,
        merchant=merchant,
        amount=amount,
        category_id=category_id,
        upload_id=upload_id,
        original_hash=fingerprint(day, amount, merchant),
    )
    db.add(tx)
    db.commit()
    return tx


def make_mapping(db, pattern, category_id=None, is_multi_merchant=False):
    mapping = MerchantMapping(
        merchant_pattern=pattern,
        category_id=category_id,
        is_multi_merchant=is_multi_merchant,
    )
    db.add(mapping)
    db.commit()
    return mapping


def row(day, merchant, amount, balance=None, booking_date="default"):
    """Raw statement row as the reader produces it (booking date defaults to the date)."""
    return {
        "date": day,
        "merchant": merchant,
        "amount": amount,
        "balance": balance,
        "booking_date": day if booking_date == "default" else booking_date,
    }


@pytest.fixture()
def today():
    return date(2026, 1, 20)
