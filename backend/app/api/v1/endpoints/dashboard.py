from __future__ import annotations

import logging
import time
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import aggregate_cache_control, get_now, get_request_id
from backend.app.core.database import get_db
from backend.app.schemas.dashboard import KpiSummary
from backend.app.services.dashboard import summarize
from backend.app.services.filters import compose_filters

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/summary", response_model=KpiSummary)
def dashboard_summary(
    response: Response,
    start: str = Query(..., description="Range start, YYYY-MM-DD or ISO-8601 datetime"),
    end: str = Query(..., description="Range end (inclusive), YYYY-MM-DD or ISO-8601 datetime"),
    category_id: str | None = Query(None, alias="categoryId"),
    product_id: str | None = Query(None, alias="productId"),
    customer_id: str | None = Query(None, alias="customerId"),
    region: str | None = Query(None),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    request_id: str | None = Depends(get_request_id),
) -> KpiSummary:
    started = time.perf_counter()
    predicate = compose_filters(
        start,
        end,
        category_id=category_id,
        product_id=product_id,
        customer_id=customer_id,
        region=region,
    )
    summary = summarize(db, predicate, now)
    response.headers["Cache-Control"] = aggregate_cache_control()
    logger.info(
        "summary %s..%s in %.1fms [request_id=%s]",
        predicate.start.date(),
        predicate.end.date(),
        (time.perf_counter() - started) * 1000,
        request_id,
    )
    return summary
