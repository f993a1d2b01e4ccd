from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import Field

from backend.app.schemas.common import CamelModel

MetricValue = int | Decimal


class LinePoint(CamelModel):
    x: str
    y: MetricValue


class LineSeries(CamelModel):
    name: str
    color: str
    points: list[LinePoint]


class LineMetadata(CamelModel):
    total: MetricValue
    average: Decimal
    min: MetricValue
    max: MetricValue


class LineChart(CamelModel):
    chart_type: Literal["line"] = "line"
    series: list[LineSeries]
    metadata: LineMetadata


class BarSeries(CamelModel):
    name: str
    color: str
    data: list[MetricValue]


class BarMetadata(CamelModel):
    total: MetricValue
    average: Decimal


class BarChart(CamelModel):
    chart_type: Literal["bar"] = "bar"
    categories: list[str]
    series: list[BarSeries]
    metadata: BarMetadata


class PieSlice(CamelModel):
    label: str
    value: MetricValue
    percentage: Decimal
    color: str


class PieMetadata(CamelModel):
    total: MetricValue


class PieChart(CamelModel):
    chart_type: Literal["pie"] = "pie"
    series: list[PieSlice]
    metadata: PieMetadata


class TableColumn(CamelModel):
    key: str
    label: str
    type: Literal["string", "number", "date", "currency", "percentage"]
    sortable: bool = False
    align: Literal["left", "center", "right"] = "left"


class TableChart(CamelModel):
    chart_type: Literal["table"] = "table"
    columns: list[TableColumn]
    rows: list[dict[str, Any]]
    next_cursor: str | None = None
    has_more: bool = False
    total: int = 0


class KpiValue(CamelModel):
    label: str
    current: MetricValue
    previous: MetricValue
    change: MetricValue
    change_percentage: Decimal
    trend: Literal["up", "down", "stable"]


class PeriodRange(CamelModel):
    start: datetime
    end: datetime


class KpiPeriods(CamelModel):
    current: PeriodRange
    previous: PeriodRange


class KpiChart(CamelModel):
    chart_type: Literal["kpi"] = "kpi"
    metrics: dict[str, KpiValue]
    period: KpiPeriods


class ChartInfo(CamelModel):
    chart_type: str
    supported_metrics: list[str]
    supported_group_by: list[str]
    supports_pagination: bool
    max_top_n: int | None = None


ChartResponse = LineChart | BarChart | PieChart | TableChart | KpiChart


class ChartCatalog(CamelModel):
    charts: list[ChartInfo] = Field(default_factory=list)
