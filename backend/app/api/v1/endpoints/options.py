from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from backend.app.api.deps import OPTIONS_CACHE_CONTROL, get_request_id
from backend.app.core.database import get_db
from backend.app.schemas.options import OptionsPage
from backend.app.services.filters import compose_dimensions
from backend.app.services.options import resolve_options

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{entity}", response_model=OptionsPage)
def list_options(
    entity: str,
    response: Response,
    q: str | None = Query(None, description="Case-insensitive search on label and code/document"),
    cursor: str | None = Query(None, description="Opaque continuation token from a previous page"),
    limit: int | None = Query(None, description="Page size; clamped to [1, 100]"),
    include_inactive: bool = Query(False, alias="includeInactive"),
    category_id: str | None = Query(None, alias="categoryId", description="Narrow products to a category"),
    region: str | None = Query(None, description="Narrow customers and regions to a region"),
    db: Session = Depends(get_db),
    request_id: str | None = Depends(get_request_id),
) -> OptionsPage:
    started = time.perf_counter()
    dims = compose_dimensions(category_id=category_id, region=region)
    page = resolve_options(
        db,
        entity,
        search=q,
        cursor=cursor,
        limit=limit,
        filters=dims,
        include_inactive=include_inactive,
    )
    response.headers["Cache-Control"] = OPTIONS_CACHE_CONTROL
    logger.info(
        "options %s: %d items in %.1fms [request_id=%s]",
        entity,
        len(page.items),
        (time.perf_counter() - started) * 1000,
        request_id,
    )
    return page
