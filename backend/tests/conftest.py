"""Shared test fixtures.

Tests run against an in-memory SQLite database.  The schema is created fresh
for every test and dropped afterwards, so tests never pollute each other.
"""

from __future__ import annotations

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date, datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backend.app.api.deps import get_now  # noqa: E402
from backend.app.core.database import Base, SessionLocal, engine, get_db, init_db  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.models.catalog import Category, Product  # noqa: E402
from backend.app.models.customer import Customer  # noqa: E402
from backend.app.models.transaction import (  # noqa: E402
    PaymentStatus,
    Transaction,
    TransactionType,
)

# Fixed reference instant for overdue / upcoming logic
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


# ─── DB session on a fresh schema ────────────────────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a session bound to a freshly created schema; dropped after the test."""
    init_db()
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the test session and a fixed clock."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_now] = lambda: NOW
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Catalog fixtures ────────────────────────────────────────────────────────


@pytest.fixture()
def category(db: Session) -> Category:
    cat = Category(code="TRANS001", name="Transporte Florestal")
    db.add(cat)
    db.flush()
    return cat


@pytest.fixture()
def other_category(db: Session) -> Category:
    cat = Category(code="ADM001", name="Administrativo")
    db.add(cat)
    db.flush()
    return cat


@pytest.fixture()
def product(db: Session, category: Category) -> Product:
    p = Product(
        code="SRV001",
        name="Frete Florestal - Bitrem",
        category_id=category.id,
        unit_price=Decimal("1200.00"),
        unit="viagem",
    )
    db.add(p)
    db.flush()
    return p


@pytest.fixture()
def other_product(db: Session, other_category: Category) -> Product:
    p = Product(
        code="EXP004",
        name="Material de Escritório",
        category_id=other_category.id,
        unit_price=Decimal("150.00"),
        unit="pedido",
    )
    db.add(p)
    db.flush()
    return p


# ─── Customer fixtures ───────────────────────────────────────────────────────


@pytest.fixture()
def customer_sudeste(db: Session) -> Customer:
    c = Customer(
        name="Suzano Papel e Celulose",
        document="16404287000155",
        city="São Paulo",
        state="SP",
        region="Sudeste",
    )
    db.add(c)
    db.flush()
    return c


@pytest.fixture()
def customer_sul(db: Session) -> Customer:
    c = Customer(
        name="Acme Corp",
        document="89637490000145",
        city="Curitiba",
        state="PR",
        region="Sul",
    )
    db.add(c)
    db.flush()
    return c


# ─── Transaction helper ──────────────────────────────────────────────────────


def make_tx(
    db: Session,
    category: Category,
    amount: str,
    occurred_at: datetime,
    *,
    tx_type: TransactionType = TransactionType.REVENUE,
    product: Product | None = None,
    customer: Customer | None = None,
    due_date: date | None = None,
    status: PaymentStatus = PaymentStatus.PAID,
    paid_at: datetime | None = None,
    quantity: int = 1,
) -> Transaction:
    tx = Transaction(
        type=tx_type,
        category_id=category.id,
        product_id=product.id if product else None,
        customer_id=customer.id if customer else None,
        amount=Decimal(amount),
        quantity=quantity,
        occurred_at=occurred_at,
        due_date=due_date,
        payment_status=status,
        paid_at=paid_at,
    )
    db.add(tx)
    db.flush()
    return tx


@pytest.fixture()
def tx_factory(db: Session):
    """Return ``make_tx`` bound to the test session."""

    def _factory(category: Category, amount: str, occurred_at: datetime, **kwargs) -> Transaction:
        return make_tx(db, category, amount, occurred_at, **kwargs)

    return _factory
