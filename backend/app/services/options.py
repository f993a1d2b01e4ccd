"""Searchable, cursor-paginated option lists for dependent selection widgets.

Rows are ordered by ``(label, id)``; with a search term a match rank comes
first (0 exact label, 1 label prefix, 2 label substring, 3 secondary field
only).  Continuation is a seek on that same key tuple, so pages never
overlap and never skip rows of an unchanged dataset.
"""

from __future__ import annotations

import enum
import logging
import uuid
from dataclasses import dataclass
from typing import Any

from sqlalchemy import String, and_, case, func, literal, or_
from sqlalchemy.orm import Query, Session
from sqlalchemy.sql.elements import ColumnElement

from backend.app.core.config import settings
from backend.app.core.errors import (
    InvalidCursorError,
    InvalidRangeError,
    UnsupportedEntityError,
)
from backend.app.models.catalog import Category, Product
from backend.app.models.customer import Customer
from backend.app.schemas.options import OptionItem, OptionsPage
from backend.app.services.cursor import CursorPayload, decode_cursor, encode_cursor
from backend.app.services.filters import DimensionFilters
from backend.app.services.store import run_read

logger = logging.getLogger(__name__)

MAX_SEARCH_LENGTH = 100
_LIKE_ESCAPE = "\\"


class OptionsEntity(str, enum.Enum):
    CATEGORIES = "categories"
    PRODUCTS = "products"
    CUSTOMERS = "customers"
    REGIONS = "regions"


def parse_entity(entity: OptionsEntity | str) -> OptionsEntity:
    if isinstance(entity, OptionsEntity):
        return entity
    try:
        return OptionsEntity(str(entity).strip().lower())
    except ValueError:
        raise UnsupportedEntityError(f"Unsupported entity: {entity}")


def clamp_limit(limit: int | None) -> int:
    """Clamp ``limit`` into ``[1, OPTIONS_MAX_LIMIT]``; ``None`` means the default."""
    if limit is None:
        return settings.OPTIONS_DEFAULT_LIMIT
    return max(1, min(int(limit), settings.OPTIONS_MAX_LIMIT))


def normalize_search(search: str | None) -> str | None:
    if search is None:
        return None
    term = search.strip()
    if not term:
        return None
    if len(term) > MAX_SEARCH_LENGTH:
        raise InvalidRangeError(f"Search term must be at most {MAX_SEARCH_LENGTH} characters")
    return term


def _escape_like(term: str) -> str:
    return (
        term.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


@dataclass(frozen=True)
class _Search:
    term: str

    def _pattern(self, prefix: str, suffix: str) -> ColumnElement[str]:
        return func.lower(literal(prefix + _escape_like(self.term) + suffix, String))

    def matches(self, column: Any) -> ColumnElement[bool]:
        return func.lower(column).like(self._pattern("%", "%"), escape=_LIKE_ESCAPE)

    def rank(self, label: Any) -> ColumnElement[int]:
        lowered = func.lower(label)
        return case(
            (lowered == func.lower(literal(self.term, String)), 0),
            (lowered.like(self._pattern("", "%"), escape=_LIKE_ESCAPE), 1),
            (lowered.like(self._pattern("%", "%"), escape=_LIKE_ESCAPE), 2),
            else_=3,
        )


@dataclass(frozen=True)
class _Anchor:
    key: Any
    label: str


def _decode_anchor(cursor: str | None, entity: OptionsEntity) -> _Anchor | None:
    """Decode and shape-check the cursor before any store access."""
    if cursor is None or cursor == "":
        return None
    payload = decode_cursor(cursor)
    if payload.sort_value is None:
        raise InvalidCursorError()
    if entity is OptionsEntity.REGIONS:
        return _Anchor(key=payload.id, label=payload.sort_value)
    try:
        key = uuid.UUID(payload.id)
    except ValueError:
        raise InvalidCursorError()
    return _Anchor(key=key, label=payload.sort_value)


def _seek_after(keys: list[tuple[Any, Any]]) -> ColumnElement[bool]:
    """Lexicographic ``(k1, k2, ...) > (a1, a2, ...)`` as expanded OR/AND terms."""
    clauses = []
    for i, (column, anchor) in enumerate(keys):
        equal_prefix = [c == a for c, a in keys[:i]]
        clauses.append(and_(*equal_prefix, column > anchor))
    return or_(*clauses)


@dataclass(frozen=True)
class _PageRequest:
    search: _Search | None
    anchor: _Anchor | None
    limit: int


def _paginate(
    query: Query,
    request: _PageRequest,
    *,
    label: Any,
    key: Any,
    secondary: Any = None,
) -> tuple[list[Any], bool, int]:
    """Apply search, ordering and the seek predicate; return rows, has_more, total.

    ``key`` may be ``None`` for grouped kinds whose label is already unique.
    """
    search = request.search
    if search is not None:
        match = search.matches(label)
        if secondary is not None:
            match = or_(match, search.matches(secondary))
        query = query.filter(match)

    total = query.order_by(None).count()

    order: list[Any] = []
    seek: list[tuple[Any, Any]] = []
    anchor = request.anchor
    if search is not None:
        rank = search.rank(label)
        order.append(rank)
        if anchor is not None:
            seek.append((rank, search.rank(literal(anchor.label, String))))
    order.append(label)
    if anchor is not None:
        seek.append((label, anchor.label))
    if key is not None:
        order.append(key)
        if anchor is not None:
            seek.append((key, anchor.key))

    if anchor is not None:
        query = query.filter(_seek_after(seek))

    rows = query.order_by(*order).limit(request.limit + 1).all()
    has_more = len(rows) > request.limit
    return rows[: request.limit], has_more, total


def _category_options(
    db: Session, request: _PageRequest, dims: DimensionFilters, include_inactive: bool,
) -> tuple[list[OptionItem], bool, int]:
    query = db.query(Category)
    if not include_inactive:
        query = query.filter(Category.is_active.is_(True))
    rows, has_more, total = _paginate(
        query, request, label=Category.name, key=Category.id, secondary=Category.code
    )
    items = [
        OptionItem(
            id=str(c.id),
            label=c.name,
            value=str(c.id),
            metadata={"code": c.code},
            disabled=not c.is_active,
        )
        for c in rows
    ]
    return items, has_more, total


def _product_options(
    db: Session, request: _PageRequest, dims: DimensionFilters, include_inactive: bool,
) -> tuple[list[OptionItem], bool, int]:
    query = db.query(Product, Category.name.label("category_name")).join(
        Category, Product.category_id == Category.id
    )
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if dims.category_id is not None:
        query = query.filter(Product.category_id == dims.category_id)

    rows, has_more, total = _paginate(
        query, request, label=Product.name, key=Product.id, secondary=Product.code
    )
    items = [
        OptionItem(
            id=str(p.id),
            label=p.name,
            value=str(p.id),
            metadata={
                "code": p.code,
                "categoryId": str(p.category_id),
                "categoryName": category_name,
                "unitPrice": str(p.unit_price) if p.unit_price is not None else None,
            },
            disabled=not p.is_active,
        )
        for p, category_name in rows
    ]
    return items, has_more, total


def _customer_options(
    db: Session, request: _PageRequest, dims: DimensionFilters, include_inactive: bool,
) -> tuple[list[OptionItem], bool, int]:
    query = db.query(Customer)
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if dims.region is not None:
        query = query.filter(Customer.region == dims.region)

    rows, has_more, total = _paginate(
        query, request, label=Customer.name, key=Customer.id, secondary=Customer.document
    )
    items = [
        OptionItem(
            id=str(c.id),
            label=c.name,
            value=str(c.id),
            metadata={"document": c.document, "region": c.region},
            disabled=not c.is_active,
        )
        for c in rows
    ]
    return items, has_more, total


def _region_options(
    db: Session, request: _PageRequest, dims: DimensionFilters, include_inactive: bool,
) -> tuple[list[OptionItem], bool, int]:
    query = db.query(
        Customer.region.label("region"),
        func.count(Customer.id).label("customer_count"),
    ).filter(
        Customer.region.is_not(None),
        func.trim(Customer.region) != "",
    )
    if not include_inactive:
        query = query.filter(Customer.is_active.is_(True))
    if dims.region is not None:
        query = query.filter(Customer.region == dims.region)
    query = query.group_by(Customer.region)

    rows, has_more, total = _paginate(query, request, label=Customer.region, key=None)
    items = [
        OptionItem(
            id=r.region,
            label=r.region,
            value=r.region,
            metadata={"customerCount": int(r.customer_count)},
        )
        for r in rows
    ]
    return items, has_more, total


def resolve_options(
    db: Session,
    entity: OptionsEntity | str,
    *,
    search: str | None = None,
    cursor: str | None = None,
    limit: int | None = None,
    filters: DimensionFilters | None = None,
    include_inactive: bool = False,
    timeout: float | None = None,
) -> OptionsPage:
    """Return one page of options for ``entity``.

    The cursor is verified before the store is touched.  ``total`` is counted
    by a separate query and may lag ``items`` under concurrent writes.
    """
    kind = parse_entity(entity)
    page_limit = clamp_limit(limit)
    term = normalize_search(search)
    anchor = _decode_anchor(cursor, kind)
    dims = filters or DimensionFilters()

    request = _PageRequest(
        search=_Search(term) if term is not None else None,
        anchor=anchor,
        limit=page_limit,
    )

    if kind is OptionsEntity.CATEGORIES:
        fetch = _category_options
    elif kind is OptionsEntity.PRODUCTS:
        fetch = _product_options
    elif kind is OptionsEntity.CUSTOMERS:
        fetch = _customer_options
    elif kind is OptionsEntity.REGIONS:
        fetch = _region_options
    else:
        raise UnsupportedEntityError(f"Unsupported entity: {kind}")

    items, has_more, total = run_read(
        db,
        lambda session: fetch(session, request, dims, include_inactive),
        timeout=timeout,
    )

    next_cursor = None
    if has_more and items:
        last = items[-1]
        next_cursor = encode_cursor(CursorPayload(id=last.id, sort_value=last.label))

    logger.debug(
        "Resolved %d %s options (has_more=%s, total=%d)",
        len(items),
        kind.value,
        next_cursor is not None,
        total,
    )
    return OptionsPage(
        items=items,
        next_cursor=next_cursor,
        has_more=next_cursor is not None,
        total=total,
    )
