"""Tests for the KPI summary service and GET /dashboard/summary."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from backend.app.models.transaction import PaymentStatus, TransactionType
from backend.app.services.filters import compose_filters
from backend.app.services.dashboard import summarize, to_money

UTC = timezone.utc
PLUS_FIVE = timezone(timedelta(hours=5))
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
ENDPOINT = "/api/v1/dashboard/summary"

REVENUE = TransactionType.REVENUE
EXPENSE = TransactionType.EXPENSE


def _at(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 10, 0, tzinfo=UTC)


# ── Totals ───────────────────────────────────────────────────────────────────


class TestTotals:

    def test_revenue_expense_and_profit(self, db: Session, tx_factory, category) -> None:
        tx_factory(category, "1500.50", _at(2024, 1, 10))
        tx_factory(category, "499.50", _at(2024, 2, 10))
        tx_factory(category, "800.25", _at(2024, 3, 10), tx_type=EXPENSE)

        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.total_revenue == Decimal("2000.00")
        assert s.total_expense == Decimal("800.25")
        assert s.liquid_profit == Decimal("1199.75")

    def test_profit_is_negative_when_expenses_dominate(self, db: Session, tx_factory, category) -> None:
        tx_factory(category, "100.00", _at(2024, 1, 10))
        tx_factory(category, "350.10", _at(2024, 1, 11), tx_type=EXPENSE)
        s = summarize(db, compose_filters("2024-01-01", "2024-01-31"), NOW)
        assert s.liquid_profit == Decimal("-250.10")

    def test_empty_dataset_gives_zeros(self, db: Session) -> None:
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.total_revenue == s.total_expense == s.liquid_profit == Decimal("0.00")
        assert s.overdue_accounts.total == Decimal("0.00")
        assert s.upcoming_accounts.total == Decimal("0.00")

    def test_rows_outside_range_ignored(self, db: Session, tx_factory, category) -> None:
        tx_factory(category, "10.00", _at(2023, 12, 31))
        tx_factory(category, "20.00", _at(2024, 1, 1))
        tx_factory(category, "40.00", _at(2024, 2, 1))
        s = summarize(db, compose_filters("2024-01-01", "2024-01-31"), NOW)
        assert s.total_revenue == Decimal("20.00")

    def test_range_end_is_inclusive(self, db: Session, tx_factory, category) -> None:
        tx_factory(category, "5.00", datetime(2024, 1, 31, 23, 59, 59, tzinfo=UTC))
        s = summarize(db, compose_filters("2024-01-01", "2024-01-31"), NOW)
        assert s.total_revenue == Decimal("5.00")

    def test_offset_timestamp_bucketed_by_utc_instant(self, db: Session, tx_factory, category) -> None:
        # 2024-01-01 02:00 at +05:00 is 2023-12-31 21:00 UTC
        tx_factory(category, "100.00", datetime(2024, 1, 1, 2, 0, tzinfo=PLUS_FIVE))
        january = summarize(db, compose_filters("2024-01-01", "2024-01-31"), NOW)
        new_year_eve = summarize(db, compose_filters("2023-12-31", "2023-12-31"), NOW)
        assert january.total_revenue == Decimal("0.00")
        assert new_year_eve.total_revenue == Decimal("100.00")

    def test_stored_timestamps_read_back_in_utc(self, db: Session, tx_factory, category) -> None:
        tx = tx_factory(category, "1.00", datetime(2024, 1, 1, 2, 0, tzinfo=PLUS_FIVE))
        db.expire(tx)
        assert tx.occurred_at == datetime(2023, 12, 31, 21, 0, tzinfo=UTC)
        assert tx.occurred_at.utcoffset() == timedelta(0)

    def test_cancelled_rows_excluded(self, db: Session, tx_factory, category) -> None:
        tx_factory(category, "100.00", _at(2024, 1, 10))
        tx_factory(category, "900.00", _at(2024, 1, 11), status=PaymentStatus.CANCELLED)
        tx_factory(
            category, "70.00", _at(2023, 1, 11),
            tx_type=EXPENSE, status=PaymentStatus.CANCELLED, due_date=date(2023, 2, 1),
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.total_revenue == Decimal("100.00")
        assert s.overdue_accounts.payable == Decimal("0.00")

    def test_metadata_echoes_period_and_now(self, db: Session) -> None:
        predicate = compose_filters("2024-01-01", "2024-12-31")
        s = summarize(db, predicate, NOW)
        assert s.metadata.period.start == predicate.start
        assert s.metadata.period.end == predicate.end
        assert s.metadata.generated_at == NOW


# ── Overdue and upcoming ─────────────────────────────────────────────────────


class TestOverdue:

    @pytest.mark.parametrize(
        "start,end",
        [("2024-01-01", "2024-12-31"), ("2024-03-01", "2024-03-31"), ("2020-01-01", "2020-01-01")],
    )
    def test_overdue_payable_ignores_query_window(
        self, db: Session, tx_factory, category, start: str, end: str,
    ) -> None:
        tx_factory(
            category, "34853.00", _at(2023, 5, 2),
            tx_type=EXPENSE, due_date=date(2023, 6, 1), status=PaymentStatus.PENDING,
        )
        s = summarize(db, compose_filters(start, end), NOW)
        assert s.overdue_accounts.payable == Decimal("34853.00")
        assert s.overdue_accounts.receivable == Decimal("0.00")
        assert s.overdue_accounts.total == Decimal("34853.00")

    def test_paid_before_now_is_not_overdue(self, db: Session, tx_factory, category) -> None:
        tx_factory(
            category, "100.00", _at(2024, 4, 1),
            due_date=date(2024, 5, 1), paid_at=_at(2024, 5, 20),
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.overdue_accounts.receivable == Decimal("0.00")

    def test_paid_at_with_offset_compared_as_utc(self, db: Session, tx_factory, category) -> None:
        # 14:00 at +05:00 is 09:00 UTC, before the 12:00 UTC reference instant
        tx_factory(
            category, "100.00", _at(2024, 4, 1),
            due_date=date(2024, 5, 1), paid_at=datetime(2024, 6, 1, 14, 0, tzinfo=PLUS_FIVE),
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.overdue_accounts.receivable == Decimal("0.00")

    def test_paid_after_now_is_still_outstanding(self, db: Session, tx_factory, category) -> None:
        tx_factory(
            category, "100.00", _at(2024, 4, 1),
            due_date=date(2024, 5, 1), paid_at=_at(2024, 7, 1),
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.overdue_accounts.receivable == Decimal("100.00")

    def test_paid_status_without_timestamp_counts_as_settled(
        self, db: Session, tx_factory, category,
    ) -> None:
        tx_factory(category, "100.00", _at(2024, 4, 1), due_date=date(2024, 5, 1))
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.overdue_accounts.total == Decimal("0.00")

    def test_overdue_and_pending_statuses_both_count(self, db: Session, tx_factory, category) -> None:
        tx_factory(
            category, "10.00", _at(2024, 4, 1),
            due_date=date(2024, 5, 1), status=PaymentStatus.OVERDUE,
        )
        tx_factory(
            category, "20.00", _at(2024, 4, 2),
            due_date=date(2024, 5, 2), status=PaymentStatus.PENDING,
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.overdue_accounts.receivable == Decimal("30.00")

    def test_reference_instant_moves_rows_between_buckets(
        self, db: Session, tx_factory, category,
    ) -> None:
        tx_factory(
            category, "50.00", _at(2024, 5, 1),
            due_date=date(2024, 6, 15), status=PaymentStatus.PENDING,
        )
        predicate = compose_filters("2024-01-01", "2024-12-31")
        before = summarize(db, predicate, NOW)
        after = summarize(db, predicate, datetime(2024, 7, 1, tzinfo=UTC))
        assert before.upcoming_accounts.receivable == Decimal("50.00")
        assert before.overdue_accounts.receivable == Decimal("0.00")
        assert after.upcoming_accounts.receivable == Decimal("0.00")
        assert after.overdue_accounts.receivable == Decimal("50.00")


class TestUpcoming:

    def test_upcoming_limited_to_window(self, db: Session, tx_factory, category) -> None:
        tx_factory(
            category, "500.00", _at(2024, 5, 20),
            due_date=date(2024, 6, 10), status=PaymentStatus.PENDING,
        )
        tx_factory(
            category, "200.00", _at(2024, 5, 20), tx_type=EXPENSE,
            due_date=date(2024, 8, 10), status=PaymentStatus.PENDING,
        )
        wide = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert wide.upcoming_accounts.receivable == Decimal("500.00")
        assert wide.upcoming_accounts.payable == Decimal("200.00")
        assert wide.upcoming_accounts.total == Decimal("700.00")

        narrow = summarize(db, compose_filters("2024-01-01", "2024-06-05"), NOW)
        assert narrow.upcoming_accounts.total == Decimal("0.00")

    def test_due_today_is_upcoming_not_overdue(self, db: Session, tx_factory, category) -> None:
        tx_factory(
            category, "75.00", _at(2024, 5, 1),
            due_date=NOW.date(), status=PaymentStatus.PENDING,
        )
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        assert s.upcoming_accounts.receivable == Decimal("75.00")
        assert s.overdue_accounts.receivable == Decimal("0.00")


# ── Filters ──────────────────────────────────────────────────────────────────


class TestFilters:

    @pytest.fixture()
    def dataset(
        self, tx_factory, category, other_category, product, other_product,
        customer_sudeste, customer_sul,
    ):
        tx_factory(category, "1000.00", _at(2024, 2, 1), product=product, customer=customer_sudeste)
        tx_factory(category, "300.00", _at(2024, 2, 2), product=product, customer=customer_sul)
        tx_factory(other_category, "120.00", _at(2024, 2, 3), tx_type=EXPENSE, product=other_product)
        tx_factory(other_category, "80.00", _at(2024, 2, 4), tx_type=EXPENSE)
        tx_factory(
            category, "45.00", _at(2024, 1, 5), customer=customer_sul,
            due_date=date(2024, 2, 1), status=PaymentStatus.PENDING,
        )

    def test_region_filter(self, db: Session, dataset) -> None:
        s = summarize(db, compose_filters("2024-01-01", "2024-12-31", region="Sul"), NOW)
        assert s.total_revenue == Decimal("345.00")
        assert s.total_expense == Decimal("0.00")
        assert s.overdue_accounts.receivable == Decimal("45.00")

    def test_category_filter(self, db: Session, dataset, other_category) -> None:
        s = summarize(
            db,
            compose_filters("2024-01-01", "2024-12-31", category_id=str(other_category.id)),
            NOW,
        )
        assert s.total_revenue == Decimal("0.00")
        assert s.total_expense == Decimal("200.00")

    def test_unknown_id_gives_zeros(self, db: Session, dataset) -> None:
        s = summarize(
            db,
            compose_filters("2024-01-01", "2024-12-31", customer_id="00000000-0000-0000-0000-000000000001"),
            NOW,
        )
        assert s.total_revenue == s.total_expense == Decimal("0.00")

    def test_filters_only_narrow(
        self, db: Session, dataset, category, product, customer_sudeste,
    ) -> None:
        base = summarize(db, compose_filters("2024-01-01", "2024-12-31"), NOW)
        narrowings = [
            {"category_id": str(category.id)},
            {"product_id": str(product.id)},
            {"customer_id": str(customer_sudeste.id)},
            {"region": "Sudeste"},
            {"region": "Sul", "category_id": str(category.id)},
        ]
        for extra in narrowings:
            s = summarize(db, compose_filters("2024-01-01", "2024-12-31", **extra), NOW)
            assert s.total_revenue <= base.total_revenue
            assert s.total_expense <= base.total_expense
            assert s.liquid_profit == s.total_revenue - s.total_expense


class TestMoney:

    def test_rounds_half_up_to_cents(self) -> None:
        assert to_money(None) == Decimal("0.00")
        assert to_money(1.005) == Decimal("1.01")
        assert to_money("2.345") == Decimal("2.35")
        assert to_money(0.1 + 0.2) == Decimal("0.30")


# ── Endpoint ─────────────────────────────────────────────────────────────────


class TestSummaryEndpoint:

    def test_response_shape(self, client, tx_factory, category) -> None:
        tx_factory(category, "1000.00", _at(2024, 2, 1))
        tx_factory(category, "250.00", _at(2024, 2, 2), tx_type=EXPENSE)
        tx_factory(
            category, "34853.00", _at(2023, 5, 2),
            tx_type=EXPENSE, due_date=date(2023, 6, 1), status=PaymentStatus.PENDING,
        )

        res = client.get(ENDPOINT, params={"start": "2024-01-01", "end": "2024-12-31"})
        assert res.status_code == 200
        body = res.json()
        assert body["totalRevenue"] == "1000.00"
        assert body["totalExpense"] == "250.00"
        assert body["liquidProfit"] == "750.00"
        assert body["overdueAccounts"] == {
            "receivable": "0.00",
            "payable": "34853.00",
            "total": "34853.00",
        }
        assert body["metadata"]["period"]["start"].startswith("2024-01-01T00:00:00")
        assert body["metadata"]["generatedAt"].startswith("2024-06-01T12:00:00")

    def test_cache_headers(self, client) -> None:
        res = client.get(ENDPOINT, params={"start": "2024-01-01", "end": "2024-01-31"})
        assert res.headers["Cache-Control"] == "private, max-age=60, stale-while-revalidate=30"

    def test_missing_start_is_400(self, client) -> None:
        res = client.get(ENDPOINT, params={"end": "2024-01-31"})
        assert res.status_code == 400
        assert res.headers["content-type"].startswith("application/problem+json")
        assert res.json()["errors"][0]["field"] == "start"

    def test_reversed_range_is_400(self, client) -> None:
        res = client.get(ENDPOINT, params={"start": "2024-02-01", "end": "2024-01-01"})
        assert res.status_code == 400
        assert res.json()["title"] == "Invalid range"

    def test_malformed_category_is_400(self, client) -> None:
        res = client.get(
            ENDPOINT,
            params={"start": "2024-01-01", "end": "2024-01-31", "categoryId": "nope"},
        )
        assert res.status_code == 400
        assert res.json()["title"] == "Invalid filter"

    def test_region_query_param(self, client, tx_factory, category, customer_sudeste, customer_sul) -> None:
        tx_factory(category, "10.00", _at(2024, 1, 2), customer=customer_sudeste)
        tx_factory(category, "20.00", _at(2024, 1, 3), customer=customer_sul)
        res = client.get(
            ENDPOINT, params={"start": "2024-01-01", "end": "2024-01-31", "region": "Sudeste"}
        )
        assert res.json()["totalRevenue"] == "10.00"
