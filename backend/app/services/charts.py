"""Chart data for the dashboard: line, bar, pie, table and KPI variants.

Each chart type has its own handler, selected by :class:`ChartType`.  Time
buckets are computed in Python from the transaction rows so that the same
code runs on PostgreSQL and SQLite; the range is capped by
``CHART_MAX_RANGE_DAYS``, which bounds how many rows a chart reads.
"""

from __future__ import annotations

import enum
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import and_, case, distinct, func, or_
from sqlalchemy.orm import Session, joinedload

from backend.app.core.config import settings
from backend.app.core.errors import (
    InvalidCursorError,
    InvalidRangeError,
    UnsupportedEntityError,
)
from backend.app.core.i18n import translate
from backend.app.models.catalog import Category, Product
from backend.app.models.customer import Customer
from backend.app.models.transaction import Transaction, TransactionType
from backend.app.schemas.charts import (
    BarChart,
    BarMetadata,
    BarSeries,
    ChartInfo,
    ChartResponse,
    KpiChart,
    KpiPeriods,
    KpiValue,
    LineChart,
    LineMetadata,
    LinePoint,
    LineSeries,
    PeriodRange,
    PieChart,
    PieMetadata,
    PieSlice,
    TableChart,
    TableColumn,
)
from backend.app.services.cursor import CursorPayload, decode_cursor, encode_cursor
from backend.app.services.dashboard import (
    CENT,
    ZERO,
    as_utc,
    in_range_clauses,
    summarize,
    to_money,
)
from backend.app.services.filters import FilterPredicate
from backend.app.services.options import clamp_limit
from backend.app.services.store import run_read

logger = logging.getLogger(__name__)

PALETTE = [
    "#3B82F6",  # blue
    "#10B981",  # green
    "#F59E0B",  # yellow
    "#EF4444",  # red
    "#8B5CF6",  # purple
    "#EC4899",  # pink
    "#14B8A6",  # teal
    "#F97316",  # orange
    "#6366F1",  # indigo
    "#84CC16",  # lime
]
OTHERS_COLOR = "#9CA3AF"
HUNDRED = Decimal("100")


class ChartType(str, enum.Enum):
    LINE = "line"
    BAR = "bar"
    PIE = "pie"
    TABLE = "table"
    KPI = "kpi"


class Metric(str, enum.Enum):
    REVENUE = "revenue"
    EXPENSE = "expense"
    PROFIT = "profit"
    QUANTITY = "quantity"
    COUNT = "count"


class GroupBy(str, enum.Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"
    CATEGORY = "category"
    PRODUCT = "product"
    CUSTOMER = "customer"
    REGION = "region"


TIME_GROUPS = (GroupBy.DAY, GroupBy.WEEK, GroupBy.MONTH, GroupBy.QUARTER, GroupBy.YEAR)

SUPPORTED_GROUP_BY: dict[ChartType, tuple[GroupBy, ...]] = {
    ChartType.LINE: (*TIME_GROUPS, GroupBy.CATEGORY, GroupBy.PRODUCT),
    ChartType.BAR: (
        GroupBy.CATEGORY,
        GroupBy.PRODUCT,
        GroupBy.CUSTOMER,
        GroupBy.REGION,
        GroupBy.MONTH,
        GroupBy.QUARTER,
        GroupBy.YEAR,
    ),
    ChartType.PIE: (GroupBy.CATEGORY, GroupBy.PRODUCT, GroupBy.CUSTOMER, GroupBy.REGION),
    ChartType.TABLE: (),
    ChartType.KPI: (),
}

DEFAULT_GROUP_BY: dict[ChartType, GroupBy | None] = {
    ChartType.LINE: GroupBy.DAY,
    ChartType.BAR: GroupBy.CATEGORY,
    ChartType.PIE: GroupBy.CATEGORY,
    ChartType.TABLE: None,
    ChartType.KPI: None,
}

MAX_TOP_N: dict[ChartType, int] = {
    ChartType.PIE: 20,
    ChartType.BAR: 50,
}


@dataclass(frozen=True)
class ChartQuery:
    metric: Metric = Metric.REVENUE
    group_by: GroupBy | None = None
    top_n: int | None = None
    cursor: str | None = None
    limit: int | None = None


def chart_catalog() -> list[ChartInfo]:
    """Describe every chart type with the metrics and groupings it accepts."""
    return [
        ChartInfo(
            chart_type=chart_type.value,
            supported_metrics=(
                [] if chart_type is ChartType.KPI else [m.value for m in Metric]
            ),
            supported_group_by=[g.value for g in SUPPORTED_GROUP_BY[chart_type]],
            supports_pagination=chart_type is ChartType.TABLE,
            max_top_n=MAX_TOP_N.get(chart_type),
        )
        for chart_type in ChartType
    ]


def _validate(chart_type: ChartType, predicate: FilterPredicate, query: ChartQuery) -> GroupBy | None:
    if predicate.date_range.days > settings.CHART_MAX_RANGE_DAYS:
        raise InvalidRangeError(
            f"Date range cannot exceed {settings.CHART_MAX_RANGE_DAYS} days"
        )

    group_by = query.group_by or DEFAULT_GROUP_BY[chart_type]
    if query.group_by is not None and query.group_by not in SUPPORTED_GROUP_BY[chart_type]:
        raise InvalidRangeError(
            f"groupBy '{query.group_by.value}' is not supported for {chart_type.value} charts"
        )

    if query.top_n is not None:
        cap = MAX_TOP_N.get(chart_type, 100)
        if not 1 <= query.top_n <= cap:
            raise InvalidRangeError(
                f"topN must be between 1 and {cap} for {chart_type.value} charts"
            )
    return group_by


# ─── Row loading and bucketing ───────────────────────────────────────────────


@dataclass(frozen=True)
class _Row:
    occurred_at: datetime
    type: TransactionType
    amount: Decimal
    quantity: int
    key: str | None = None
    label: str | None = None


def _dimension_columns(group_by: GroupBy | None) -> tuple[Any, Any]:
    if group_by is GroupBy.CATEGORY:
        return Transaction.category_id, Category.name
    if group_by is GroupBy.PRODUCT:
        return Transaction.product_id, Product.name
    if group_by is GroupBy.CUSTOMER:
        return Transaction.customer_id, Customer.name
    if group_by is GroupBy.REGION:
        return Customer.region.label("region_key"), Customer.region
    return None, None


def _load_rows(db: Session, predicate: FilterPredicate, group_by: GroupBy | None) -> list[_Row]:
    key_col, label_col = _dimension_columns(group_by)
    columns = [
        Transaction.occurred_at,
        Transaction.type,
        Transaction.amount,
        Transaction.quantity,
    ]
    if key_col is not None:
        columns += [key_col, label_col]

    q = db.query(*columns)
    if group_by is GroupBy.CATEGORY:
        q = q.join(Category, Transaction.category_id == Category.id)
    elif group_by is GroupBy.PRODUCT:
        q = q.join(Product, Transaction.product_id == Product.id)
    elif group_by in (GroupBy.CUSTOMER, GroupBy.REGION):
        q = q.join(Customer, Transaction.customer_id == Customer.id)

    rows = q.filter(*in_range_clauses(predicate)).order_by(Transaction.occurred_at).all()
    result = []
    for r in rows:
        key = label = None
        if key_col is not None:
            key = str(r[4]) if r[4] is not None else None
            label = r[5]
        result.append(
            _Row(
                occurred_at=as_utc(r[0]),
                type=r[1],
                amount=Decimal(str(r[2])),
                quantity=int(r[3]),
                key=key,
                label=label,
            )
        )
    return result


def metric_value(metric: Metric, row: _Row) -> int | Decimal:
    if metric is Metric.REVENUE:
        return row.amount if row.type is TransactionType.REVENUE else ZERO
    if metric is Metric.EXPENSE:
        return row.amount if row.type is TransactionType.EXPENSE else ZERO
    if metric is Metric.PROFIT:
        return row.amount if row.type is TransactionType.REVENUE else -row.amount
    if metric is Metric.QUANTITY:
        return row.quantity
    return 1


def _zero(metric: Metric) -> int | Decimal:
    return 0 if metric in (Metric.QUANTITY, Metric.COUNT) else ZERO


def _finish(value: int | Decimal) -> int | Decimal:
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return value


def bucket_key(moment: date, group_by: GroupBy) -> str:
    """Label of the time bucket containing ``moment``."""
    if group_by is GroupBy.DAY:
        return moment.isoformat()
    if group_by is GroupBy.WEEK:
        year, week, _ = moment.isocalendar()
        return f"{year}-W{week:02d}"
    if group_by is GroupBy.MONTH:
        return f"{moment.year}-{moment.month:02d}"
    if group_by is GroupBy.QUARTER:
        return f"{moment.year}-Q{(moment.month - 1) // 3 + 1}"
    if group_by is GroupBy.YEAR:
        return str(moment.year)
    raise ValueError(f"Not a time grouping: {group_by}")


def bucket_keys(predicate: FilterPredicate, group_by: GroupBy) -> list[str]:
    """Every bucket touched by the range, in order, including empty ones."""
    keys: list[str] = []
    day = predicate.start.date()
    last = predicate.end.date()
    while day <= last:
        key = bucket_key(day, group_by)
        if not keys or keys[-1] != key:
            keys.append(key)
        day += timedelta(days=1)
    return keys


def _average(total: int | Decimal, count: int) -> Decimal:
    if count == 0:
        return ZERO.quantize(CENT)
    return (Decimal(total) / count).quantize(CENT, rounding=ROUND_HALF_UP)


def _percentage(value: int | Decimal, total: int | Decimal) -> Decimal:
    if total == 0:
        return ZERO.quantize(CENT)
    return (Decimal(value) / Decimal(total) * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def _color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


def _ranked_groups(
    rows: list[_Row], metric: Metric, language: str
) -> list[tuple[str, int | Decimal]]:
    """Aggregate rows by dimension label, largest value first, label as tie-break."""
    totals: dict[str, int | Decimal] = defaultdict(lambda: _zero(metric))
    labels: dict[str, str] = {}
    for row in rows:
        if row.key is None:
            continue
        labels[row.key] = row.label or translate(language, "charts.unknown")
        totals[row.key] += metric_value(metric, row)
    groups = [(labels[k], _finish(v)) for k, v in totals.items()]
    groups.sort(key=lambda g: (-g[1], g[0]))
    return groups


def _apply_top_n(
    groups: list[tuple[str, int | Decimal]], top_n: int | None, metric: Metric, language: str
) -> tuple[list[tuple[str, int | Decimal]], bool]:
    """Keep the ``top_n`` largest groups and fold the rest into one "Others" group."""
    if top_n is None or top_n >= len(groups):
        return groups, False
    rest = sum((v for _, v in groups[top_n:]), _zero(metric))
    return [*groups[:top_n], (translate(language, "charts.others"), _finish(rest))], True


# ─── Variant handlers ────────────────────────────────────────────────────────


def _line_chart(
    db: Session, predicate: FilterPredicate, query: ChartQuery, group_by: GroupBy, language: str
) -> LineChart:
    metric = query.metric
    rows = _load_rows(db, predicate, group_by)

    series_points: dict[str, dict[str, int | Decimal]] = {}
    if group_by in TIME_GROUPS:
        axis = bucket_keys(predicate, group_by)
        if metric in (Metric.QUANTITY, Metric.COUNT):
            # Counts split by transaction type; money metrics are one series
            names = {t: translate(language, f"type.{t.value}") for t in TransactionType}
            for t in TransactionType:
                series_points[names[t]] = {}
            for row in rows:
                points = series_points[names[row.type]]
                key = bucket_key(row.occurred_at.date(), group_by)
                points[key] = points.get(key, _zero(metric)) + metric_value(metric, row)
        else:
            points = series_points.setdefault(translate(language, f"metrics.{metric.value}"), {})
            for row in rows:
                key = bucket_key(row.occurred_at.date(), group_by)
                points[key] = points.get(key, _zero(metric)) + metric_value(metric, row)
    else:
        axis = bucket_keys(predicate, GroupBy.DAY)
        for row in rows:
            if row.key is None:
                continue
            name = row.label or translate(language, "charts.unknown")
            points = series_points.setdefault(name, {})
            key = row.occurred_at.date().isoformat()
            points[key] = points.get(key, _zero(metric)) + metric_value(metric, row)

    series = []
    values: list[int | Decimal] = []
    names = list(series_points)
    if group_by not in TIME_GROUPS:
        names.sort()
    for index, name in enumerate(names):
        points = series_points[name]
        filled = [
            LinePoint(x=x, y=_finish(points.get(x, _zero(metric)))) for x in axis
        ]
        values.extend(p.y for p in filled)
        series.append(LineSeries(name=name, color=_color(index), points=filled))

    total = _finish(sum(values, _zero(metric)))
    return LineChart(
        series=series,
        metadata=LineMetadata(
            total=total,
            average=_average(total, len(values)),
            min=min(values) if values else _zero(metric),
            max=max(values) if values else _zero(metric),
        ),
    )


def _bar_chart(
    db: Session, predicate: FilterPredicate, query: ChartQuery, group_by: GroupBy, language: str
) -> BarChart:
    metric = query.metric
    rows = _load_rows(db, predicate, group_by)

    if group_by in TIME_GROUPS:
        buckets = {key: _zero(metric) for key in bucket_keys(predicate, group_by)}
        for row in rows:
            buckets[bucket_key(row.occurred_at.date(), group_by)] += metric_value(metric, row)
        groups = [(k, _finish(v)) for k, v in buckets.items()]
        if query.top_n is not None:
            groups = sorted(groups, key=lambda g: (-g[1], g[0]))
            groups, _ = _apply_top_n(groups, query.top_n, metric, language)
    else:
        groups, _ = _apply_top_n(
            _ranked_groups(rows, metric, language), query.top_n, metric, language
        )

    data = [v for _, v in groups]
    total = _finish(sum(data, _zero(metric)))
    return BarChart(
        categories=[label for label, _ in groups],
        series=[
            BarSeries(
                name=translate(language, f"metrics.{metric.value}"),
                color=_color(0),
                data=data,
            )
        ],
        metadata=BarMetadata(total=total, average=_average(total, len(data))),
    )


def _pie_chart(
    db: Session, predicate: FilterPredicate, query: ChartQuery, group_by: GroupBy, language: str
) -> PieChart:
    metric = query.metric
    rows = _load_rows(db, predicate, group_by)
    groups, folded = _apply_top_n(
        _ranked_groups(rows, metric, language), query.top_n, metric, language
    )
    total = _finish(sum((v for _, v in groups), _zero(metric)))

    slices = []
    for index, (label, value) in enumerate(groups):
        is_others = folded and index == len(groups) - 1
        slices.append(
            PieSlice(
                label=label,
                value=value,
                percentage=_percentage(value, total),
                color=OTHERS_COLOR if is_others else _color(index),
            )
        )
    return PieChart(series=slices, metadata=PieMetadata(total=total))


_TABLE_COLUMNS = [
    ("occurredAt", "date", "left"),
    ("type", "string", "left"),
    ("category", "string", "left"),
    ("product", "string", "left"),
    ("customer", "string", "left"),
    ("amount", "currency", "right"),
    ("quantity", "number", "right"),
    ("status", "string", "left"),
]


def _decode_table_anchor(cursor: str | None) -> tuple[datetime, uuid.UUID] | None:
    if not cursor:
        return None
    payload = decode_cursor(cursor)
    if payload.sort_value is None:
        raise InvalidCursorError()
    try:
        return as_utc(datetime.fromisoformat(payload.sort_value)), uuid.UUID(payload.id)
    except ValueError:
        raise InvalidCursorError()


def _table_chart(
    db: Session, predicate: FilterPredicate, query: ChartQuery, language: str
) -> TableChart:
    """Individual transactions, newest first, seek-paginated on (occurred_at, id)."""
    anchor = _decode_table_anchor(query.cursor)
    limit = clamp_limit(query.limit)

    base = db.query(Transaction).filter(*in_range_clauses(predicate))
    total = base.order_by(None).count()

    q = base.options(
        joinedload(Transaction.category),
        joinedload(Transaction.product),
        joinedload(Transaction.customer),
    )
    if anchor is not None:
        occurred_at, tx_id = anchor
        q = q.filter(
            or_(
                Transaction.occurred_at < occurred_at,
                and_(Transaction.occurred_at == occurred_at, Transaction.id < tx_id),
            )
        )
    rows = (
        q.order_by(Transaction.occurred_at.desc(), Transaction.id.desc())
        .limit(limit + 1)
        .all()
    )
    has_more = len(rows) > limit
    rows = rows[:limit]

    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = encode_cursor(
            CursorPayload(id=str(last.id), sort_value=as_utc(last.occurred_at).isoformat())
        )

    return TableChart(
        columns=[
            TableColumn(
                key=key,
                label=translate(language, f"table.{key}"),
                type=col_type,
                sortable=key in ("occurredAt", "amount"),
                align=align,
            )
            for key, col_type, align in _TABLE_COLUMNS
        ],
        rows=[
            {
                "id": str(tx.id),
                "occurredAt": as_utc(tx.occurred_at).isoformat(),
                "type": translate(language, f"type.{tx.type.value}"),
                "category": tx.category.name if tx.category else "-",
                "product": tx.product.name if tx.product else "-",
                "customer": tx.customer.name if tx.customer else "-",
                "amount": str(to_money(tx.amount)),
                "quantity": tx.quantity,
                "status": translate(language, f"status.{tx.payment_status.value}"),
            }
            for tx in rows
        ],
        next_cursor=next_cursor,
        has_more=next_cursor is not None,
        total=total,
    )


def _period_figures(db: Session, predicate: FilterPredicate) -> dict[str, int | Decimal]:
    clauses = in_range_clauses(predicate)
    row = (
        db.query(
            func.coalesce(
                func.sum(case((Transaction.type == TransactionType.REVENUE, Transaction.amount), else_=0)), 0
            ).label("revenue"),
            func.coalesce(
                func.sum(case((Transaction.type == TransactionType.EXPENSE, Transaction.amount), else_=0)), 0
            ).label("expense"),
            func.count(Transaction.id).label("transactions"),
            func.coalesce(func.sum(Transaction.amount), 0).label("volume"),
            func.count(distinct(Transaction.customer_id)).label("customers"),
            func.count(distinct(Transaction.product_id)).label("products"),
        )
        .filter(*clauses)
        .one()
    )
    revenue, expense = to_money(row.revenue), to_money(row.expense)
    transactions = int(row.transactions)
    return {
        "revenue": revenue,
        "expense": expense,
        "profit": revenue - expense,
        "transactions": transactions,
        "avgTicket": _average(to_money(row.volume), transactions),
        "customers": int(row.customers),
        "products": int(row.products),
    }


def kpi_value(label: str, current: int | Decimal, previous: int | Decimal) -> KpiValue:
    """Compare two figures; a zero baseline reports +/-100% for any move."""
    change = current - previous
    if previous != 0:
        pct = Decimal(change) / abs(Decimal(previous)) * HUNDRED
    elif current > 0:
        pct = HUNDRED
    elif current < 0:
        pct = -HUNDRED
    else:
        pct = ZERO
    if change > 0:
        trend = "up"
    elif change < 0:
        trend = "down"
    else:
        trend = "stable"
    return KpiValue(
        label=label,
        current=current,
        previous=previous,
        change=change,
        change_percentage=pct.quantize(CENT, rounding=ROUND_HALF_UP),
        trend=trend,
    )


def _kpi_chart(
    db: Session,
    predicate: FilterPredicate,
    now: datetime,
    language: str,
    timeout: float | None,
) -> KpiChart:
    previous = predicate.previous_period()
    current_figures = run_read(db, lambda s: _period_figures(s, predicate), timeout=timeout)
    previous_figures = run_read(db, lambda s: _period_figures(s, previous), timeout=timeout)

    # Outstanding accounts: current as of now, previous as of the prior period's end
    current_summary = summarize(db, predicate, now, timeout=timeout)
    previous_summary = summarize(db, previous, min(as_utc(now), previous.end), timeout=timeout)
    for figures, summary in (
        (current_figures, current_summary),
        (previous_figures, previous_summary),
    ):
        figures["overdueReceivables"] = summary.overdue_accounts.receivable
        figures["overduePayables"] = summary.overdue_accounts.payable
        figures["upcomingReceivables"] = summary.upcoming_accounts.receivable
        figures["upcomingPayables"] = summary.upcoming_accounts.payable

    label_keys = {
        "revenue": "kpi.revenue",
        "expense": "kpi.expense",
        "profit": "kpi.profit",
        "transactions": "kpi.transactions",
        "avgTicket": "kpi.avg_ticket",
        "customers": "kpi.customers",
        "products": "kpi.products",
        "overdueReceivables": "kpi.overdue_receivables",
        "overduePayables": "kpi.overdue_payables",
        "upcomingReceivables": "kpi.upcoming_receivables",
        "upcomingPayables": "kpi.upcoming_payables",
    }
    return KpiChart(
        metrics={
            name: kpi_value(
                translate(language, key), current_figures[name], previous_figures[name]
            )
            for name, key in label_keys.items()
        },
        period=KpiPeriods(
            current=PeriodRange(start=predicate.start, end=predicate.end),
            previous=PeriodRange(start=previous.start, end=previous.end),
        ),
    )


def build_chart(
    db: Session,
    chart_type: ChartType | str,
    predicate: FilterPredicate,
    query: ChartQuery,
    now: datetime,
    *,
    language: str = "en",
    timeout: float | None = None,
) -> ChartResponse:
    """Build the payload for one chart type over ``predicate``."""
    try:
        kind = ChartType(chart_type)
    except ValueError:
        raise UnsupportedEntityError(f"Unsupported chart type: {chart_type}")
    group_by = _validate(kind, predicate, query)

    if kind is ChartType.LINE:
        chart = run_read(
            db, lambda s: _line_chart(s, predicate, query, group_by, language), timeout=timeout
        )
    elif kind is ChartType.BAR:
        chart = run_read(
            db, lambda s: _bar_chart(s, predicate, query, group_by, language), timeout=timeout
        )
    elif kind is ChartType.PIE:
        chart = run_read(
            db, lambda s: _pie_chart(s, predicate, query, group_by, language), timeout=timeout
        )
    elif kind is ChartType.TABLE:
        # Verify the cursor before touching the store
        _decode_table_anchor(query.cursor)
        chart = run_read(
            db, lambda s: _table_chart(s, predicate, query, language), timeout=timeout
        )
    elif kind is ChartType.KPI:
        chart = _kpi_chart(db, predicate, now, language, timeout)
    else:
        raise UnsupportedEntityError(f"Unsupported chart type: {kind}")

    logger.debug("Built %s chart (metric=%s, groupBy=%s)", kind.value, query.metric.value, group_by)
    return chart
