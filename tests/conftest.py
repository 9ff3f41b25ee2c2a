"""Shared fixtures: a fresh SQLite ledger per test, an API client, and seed helpers."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from database import create_ledger_engine, create_session_factory, get_session, init_db
from models import Supplier
from services.line_item_service import LineItemService


@pytest.fixture
def engine(tmp_path):
    engine = create_ledger_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from main import app

    def override_get_session():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_session] = override_get_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth(role="admin", user_id=1):
    token = jwt.encode({"id": user_id, "role": role}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


def make_supplier(db, name="Peak Sports Supply", approved=True, active=True, email=None):
    supplier = Supplier(business_name=name, email=email, is_approved=approved, is_active=active)
    db.add(supplier)
    db.commit()
    return supplier


def make_order(db, supplier, totals, delivered=True):
    """
    One order with an item per total (commission 0, so total == unit price).
    Returns the (order_id, item_id) refs in item order.
    """
    order = LineItemService.create_order(
        db,
        [
            {"supplier_id": supplier.id, "name": f"Item {i}", "quantity": 1, "unit_price": Decimal(str(t))}
            for i, t in enumerate(totals)
        ],
        commission_rate=Decimal("0"),
    )
    if delivered:
        LineItemService.mark_order_delivered(db, order.id)
    db.commit()
    return [item.ref for item in order.items]
