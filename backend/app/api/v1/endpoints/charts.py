from __future__ import annotations

import logging
import time
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import (
    aggregate_cache_control,
    get_language,
    get_now,
    get_request_id,
)
from backend.app.core.database import get_db
from backend.app.schemas.charts import ChartCatalog, ChartResponse
from backend.app.services.charts import (
    ChartQuery,
    ChartType,
    GroupBy,
    Metric,
    build_chart,
    chart_catalog,
)
from backend.app.services.filters import compose_filters

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=ChartCatalog)
def list_chart_types() -> ChartCatalog:
    return ChartCatalog(charts=chart_catalog())


@router.get("/{chart_type}", response_model=ChartResponse)
def get_chart(
    chart_type: ChartType,
    response: Response,
    start: str = Query(..., description="Range start, YYYY-MM-DD or ISO-8601 datetime"),
    end: str = Query(..., description="Range end (inclusive), YYYY-MM-DD or ISO-8601 datetime"),
    metric: Metric = Query(Metric.REVENUE),
    group_by: GroupBy | None = Query(None, alias="groupBy"),
    top_n: int | None = Query(None, alias="topN"),
    cursor: str | None = Query(None, description="Table charts only"),
    limit: int | None = Query(None, description="Table charts only; clamped to [1, 100]"),
    category_id: str | None = Query(None, alias="categoryId"),
    product_id: str | None = Query(None, alias="productId"),
    customer_id: str | None = Query(None, alias="customerId"),
    region: str | None = Query(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    language: str = Depends(get_language),
    request_id: str | None = Depends(get_request_id),
) -> ChartResponse:
    started = time.perf_counter()
    predicate = compose_filters(
        start,
        end,
        category_id=category_id,
        product_id=product_id,
        customer_id=customer_id,
        region=region,
    )
    query = ChartQuery(
        metric=metric, group_by=group_by, top_n=top_n, cursor=cursor, limit=limit
    )
    chart = build_chart(db, chart_type, predicate, query, now, language=language)

    # KPI figures move faster than the other charts
    max_ttl = 30 if chart_type is ChartType.KPI else 60
    response.headers["Cache-Control"] = aggregate_cache_control(max_ttl)
    logger.info(
        "chart %s in %.1fms [request_id=%s]",
        chart_type.value,
        (time.perf_counter() - started) * 1000,
        request_id,
    )
    return chart
