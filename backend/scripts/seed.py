"""Create the tables and seed demo categories, products, customers and a year of transactions.

Usage:
    python -m backend.scripts.seed

Seeding is skipped when categories already exist.  Transactions are
generated from a fixed random seed so every run produces the same dataset.
"""

from __future__ import annotations

import random
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal

from backend.app.core.database import SessionLocal, init_db
from backend.app.models.catalog import Category, Product
from backend.app.models.customer import Customer
from backend.app.models.transaction import PaymentStatus, Transaction, TransactionType

CATEGORIES: list[tuple[str, str, str]] = [
    ("TRANS001", "Suzano Transporte Florestal", "Forestry freight for pulp mills"),
    ("TRANS002", "Transporte de Agregados Itabira MG", "Aggregate and ore haulage"),
    ("ADM001", "Administrativo", "Overheads and back office"),
    ("MAN001", "Manutenção de Frota", "Fleet maintenance"),
]

# code, name, category code, unit price, unit, transaction type
PRODUCTS: list[tuple[str, str, str, str, str, TransactionType]] = [
    ("SRV001", "Frete Florestal - Caminhão Truck", "TRANS001", "850.00", "viagem", TransactionType.REVENUE),
    ("SRV002", "Frete Florestal - Bitrem", "TRANS001", "1200.00", "viagem", TransactionType.REVENUE),
    ("SRV003", "Transporte de Minério - Basculante", "TRANS002", "980.00", "viagem", TransactionType.REVENUE),
    ("EXP001", "Combustível Diesel S10", "MAN001", "5.89", "litro", TransactionType.EXPENSE),
    ("EXP002", "Manutenção Preventiva", "MAN001", "2500.00", "serviço", TransactionType.EXPENSE),
    ("EXP003", "Pneus Caminhão", "MAN001", "1800.00", "unidade", TransactionType.EXPENSE),
    ("EXP004", "Material de Escritório", "ADM001", "150.00", "pedido", TransactionType.EXPENSE),
]

# name, document, city, state, region
CUSTOMERS: list[tuple[str, str, str, str, str]] = [
    ("Suzano Papel e Celulose S.A.", "16404287000155", "São Paulo", "SP", "Sudeste"),
    ("Vale S.A.", "33592510000154", "Itabira", "MG", "Sudeste"),
    ("Klabin S.A.", "89637490000145", "Telêmaco Borba", "PR", "Sul"),
    ("Eldorado Brasil Celulose", "07401436000131", "Três Lagoas", "MS", "Centro-Oeste"),
    ("Veracel Celulose", "40551996000107", "Eunápolis", "BA", "Nordeste"),
    ("Posto Rodovia BR-381", "12345678000190", "João Monlevade", "MG", "Sudeste"),
    ("Auto Peças Norte", "98765432000110", "Belém", "PA", "Norte"),
]

RANDOM_SEED = 20240101
DAYS_OF_HISTORY = 365
TRANSACTIONS_PER_DAY = 3


def _status_for(due: datetime, now: datetime, rng: random.Random) -> tuple[PaymentStatus, datetime | None]:
    """Mostly paid history, a tail of overdue items and pending future dues."""
    if due.date() >= now.date():
        return PaymentStatus.PENDING, None
    roll = rng.random()
    if roll < 0.8:
        return PaymentStatus.PAID, due - timedelta(days=rng.randint(0, 5))
    if roll < 0.95:
        return PaymentStatus.OVERDUE, None
    return PaymentStatus.CANCELLED, None


def seed() -> None:
    init_db()
    db = SessionLocal()
    try:
        if db.query(Category).first() is not None:
            print("Categories already present; skipping seed.")
            return

        # ── Categories ─────────────────────────────────────────────────
        categories: dict[str, Category] = {}
        for code, name, description in CATEGORIES:
            category = Category(code=code, name=name, description=description)
            db.add(category)
            categories[code] = category
            print(f"Created category {code} - {name}")
        db.flush()

        # ── Products ───────────────────────────────────────────────────
        products: list[tuple[Product, TransactionType]] = []
        for code, name, category_code, price, unit, tx_type in PRODUCTS:
            product = Product(
                code=code,
                name=name,
                category_id=categories[category_code].id,
                unit_price=Decimal(price),
                unit=unit,
            )
            db.add(product)
            products.append((product, tx_type))
            print(f"Created product {code} - {name}")
        db.flush()

        # ── Customers ──────────────────────────────────────────────────
        customers: list[Customer] = []
        for name, document, city, state, region in CUSTOMERS:
            customer = Customer(
                name=name,
                document=document,
                city=city,
                state=state,
                region=region,
            )
            db.add(customer)
            customers.append(customer)
            print(f"Created customer {name} ({region})")
        db.flush()

        # ── Transactions ───────────────────────────────────────────────
        rng = random.Random(RANDOM_SEED)
        now = datetime.now(timezone.utc)
        first_day = now.date() - timedelta(days=DAYS_OF_HISTORY)
        count = 0
        for offset in range(DAYS_OF_HISTORY + 1):
            day = first_day + timedelta(days=offset)
            for _ in range(rng.randint(1, TRANSACTIONS_PER_DAY)):
                product, tx_type = rng.choice(products)
                quantity = rng.randint(1, 400 if product.unit == "litro" else 12)
                unit_price = product.unit_price or Decimal("0")
                occurred_at = datetime.combine(
                    day, time(rng.randint(7, 19), rng.randint(0, 59)), tzinfo=timezone.utc
                )
                due = occurred_at + timedelta(days=rng.choice([0, 15, 30, 45, 60]))
                status, paid_at = _status_for(due, now, rng)
                db.add(
                    Transaction(
                        type=tx_type,
                        product_id=product.id,
                        customer_id=rng.choice(customers).id if tx_type is TransactionType.REVENUE else None,
                        category_id=product.category_id,
                        amount=(unit_price * quantity).quantize(Decimal("0.01")),
                        quantity=quantity,
                        unit_price=unit_price,
                        occurred_at=occurred_at,
                        due_date=due.date(),
                        paid_at=paid_at,
                        payment_status=status,
                        invoice_number=f"NF-{day:%Y%m%d}-{count:05d}",
                    )
                )
                count += 1
        print(f"Created {count} transactions.")

        db.commit()
        print("Seed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    seed()
