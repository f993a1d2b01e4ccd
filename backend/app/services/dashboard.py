"""Financial KPI summary over a date range and optional dimension filters."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.orm import Session

from backend.app.models.customer import Customer
from backend.app.models.transaction import PaymentStatus, Transaction, TransactionType
from backend.app.schemas.dashboard import (
    AccountsBreakdown,
    KpiSummary,
    Period,
    SummaryMetadata,
)
from backend.app.services.filters import DimensionFilters, FilterPredicate
from backend.app.services.store import run_read

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """Convert a DB aggregate to a 2-place Decimal, rounding half up."""
    if value is None:
        return ZERO.quantize(CENT)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def dimension_clauses(dims: DimensionFilters) -> list[Any]:
    """WHERE clauses narrowing transactions by every present dimension."""
    clauses: list[Any] = []
    if dims.category_id is not None:
        clauses.append(Transaction.category_id == dims.category_id)
    if dims.product_id is not None:
        clauses.append(Transaction.product_id == dims.product_id)
    if dims.customer_id is not None:
        clauses.append(Transaction.customer_id == dims.customer_id)
    if dims.region is not None:
        clauses.append(
            Transaction.customer_id.in_(
                select(Customer.id).where(Customer.region == dims.region)
            )
        )
    return clauses


def in_range_clauses(predicate: FilterPredicate) -> list[Any]:
    """Non-cancelled transactions that occurred inside the predicate's range."""
    return [
        Transaction.occurred_at >= predicate.start,
        Transaction.occurred_at <= predicate.end,
        Transaction.payment_status != PaymentStatus.CANCELLED,
        *dimension_clauses(predicate.dimensions),
    ]


def unsettled_clause(now: datetime) -> Any:
    """Not cancelled and not paid as of ``now``.

    A row is paid once ``paid_at <= now``; a PAID status with no ``paid_at``
    also counts as paid.
    """
    return and_(
        Transaction.payment_status != PaymentStatus.CANCELLED,
        or_(
            and_(
                Transaction.paid_at.is_(None),
                Transaction.payment_status != PaymentStatus.PAID,
            ),
            Transaction.paid_at > now,
        ),
    )


def _sum_by_type(tx_type: TransactionType) -> Any:
    return func.coalesce(
        func.sum(case((Transaction.type == tx_type, Transaction.amount), else_=0)), 0
    )


def _split_totals(db: Session, *clauses: Any) -> tuple[Decimal, Decimal]:
    row = (
        db.query(
            _sum_by_type(TransactionType.REVENUE).label("revenue"),
            _sum_by_type(TransactionType.EXPENSE).label("expense"),
        )
        .filter(*clauses)
        .one()
    )
    return to_money(row.revenue), to_money(row.expense)


def _breakdown(receivable: Decimal, payable: Decimal) -> AccountsBreakdown:
    return AccountsBreakdown(
        receivable=receivable,
        payable=payable,
        total=receivable + payable,
    )


def summarize(
    db: Session,
    predicate: FilterPredicate,
    now: datetime,
    *,
    timeout: float | None = None,
) -> KpiSummary:
    """Compute revenue, expense, liquid profit and the overdue/upcoming buckets.

    Overdue accounts ignore the date range entirely: anything unsettled and
    due before ``now``'s date counts.  Upcoming accounts are due today or
    later and inside the range.  Dimension filters apply to every figure.
    """
    now = as_utc(now)
    today = now.date()
    dims = dimension_clauses(predicate.dimensions)

    def compute(session: Session) -> tuple[tuple[Decimal, Decimal], ...]:
        totals = _split_totals(session, *in_range_clauses(predicate))
        overdue = _split_totals(
            session,
            unsettled_clause(now),
            Transaction.due_date.is_not(None),
            Transaction.due_date < today,
            *dims,
        )
        upcoming = _split_totals(
            session,
            unsettled_clause(now),
            Transaction.due_date.is_not(None),
            Transaction.due_date >= today,
            Transaction.due_date >= predicate.start.date(),
            Transaction.due_date <= predicate.end.date(),
            *dims,
        )
        return totals, overdue, upcoming

    (revenue, expense), overdue, upcoming = run_read(db, compute, timeout=timeout)

    logger.debug(
        "Summary %s..%s: revenue=%s expense=%s",
        predicate.start.isoformat(),
        predicate.end.isoformat(),
        revenue,
        expense,
    )
    return KpiSummary(
        total_revenue=revenue,
        total_expense=expense,
        liquid_profit=revenue - expense,
        overdue_accounts=_breakdown(*overdue),
        upcoming_accounts=_breakdown(*upcoming),
        metadata=SummaryMetadata(
            period=Period(start=predicate.start, end=predicate.end),
            generated_at=now,
        ),
    )
