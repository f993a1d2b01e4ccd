"""Normalize a date range and dimension filters into a reusable predicate."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from backend.app.core.errors import InvalidFilterError, InvalidRangeError

MAX_REGION_LENGTH = 50

_DAY_END = time(23, 59, 59, 999999)


@dataclass(frozen=True)
class DateRange:
    start: datetime
    end: datetime

    @property
    def days(self) -> int:
        """Number of calendar days touched by the range, inclusive."""
        return (self.end.date() - self.start.date()).days + 1


@dataclass(frozen=True)
class DimensionFilters:
    category_id: uuid.UUID | None = None
    product_id: uuid.UUID | None = None
    region: str | None = None
    customer_id: uuid.UUID | None = None

    def is_empty(self) -> bool:
        return (
            self.category_id is None
            and self.product_id is None
            and self.region is None
            and self.customer_id is None
        )


@dataclass(frozen=True)
class FilterPredicate:
    date_range: DateRange
    dimensions: DimensionFilters = field(default_factory=DimensionFilters)

    @property
    def start(self) -> datetime:
        return self.date_range.start

    @property
    def end(self) -> datetime:
        return self.date_range.end

    def previous_period(self) -> FilterPredicate:
        """The window of equal length ending right before this one starts."""
        length = self.end - self.start
        prev_end = self.start - timedelta(microseconds=1)
        return FilterPredicate(
            date_range=DateRange(start=prev_end - length, end=prev_end),
            dimensions=self.dimensions,
        )


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _normalize_bound(value: date | datetime | str, *, is_end: bool, name: str) -> datetime:
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 10:
                value = date.fromisoformat(text)
            else:
                # Python < 3.11 does not accept a trailing "Z"
                value = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidRangeError(f"Invalid {name} date: {text!r}")

    if isinstance(value, datetime):
        return _as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, _DAY_END if is_end else time.min, tzinfo=timezone.utc)
    raise InvalidRangeError(f"Invalid {name} date")


def _parse_uuid(value: uuid.UUID | str | None, name: str) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return uuid.UUID(text)
    except ValueError:
        raise InvalidFilterError(f"{name} must be a valid UUID")


def _normalize_region(region: str | None) -> str | None:
    if region is None:
        return None
    text = region.strip()
    if not text:
        return None
    if len(text) > MAX_REGION_LENGTH:
        raise InvalidFilterError(f"region must be at most {MAX_REGION_LENGTH} characters")
    return text


def compose_dimensions(
    *,
    category_id: uuid.UUID | str | None = None,
    product_id: uuid.UUID | str | None = None,
    region: str | None = None,
    customer_id: uuid.UUID | str | None = None,
) -> DimensionFilters:
    """Validate dimension filters alone, for callers without a date range."""
    return DimensionFilters(
        category_id=_parse_uuid(category_id, "categoryId"),
        product_id=_parse_uuid(product_id, "productId"),
        region=_normalize_region(region),
        customer_id=_parse_uuid(customer_id, "customerId"),
    )


def compose_filters(
    start: date | datetime | str,
    end: date | datetime | str,
    *,
    category_id: uuid.UUID | str | None = None,
    product_id: uuid.UUID | str | None = None,
    region: str | None = None,
    customer_id: uuid.UUID | str | None = None,
) -> FilterPredicate:
    """Build the predicate shared by options, summary and chart queries.

    A plain date ``start`` covers the day from midnight UTC, a plain date
    ``end`` covers it up to its last microsecond.  Filter ids are checked
    for shape only; ids that match nothing simply narrow results to nothing.
    """
    if start is None or end is None:
        raise InvalidRangeError("start and end are required")
    start_dt = _normalize_bound(start, is_end=False, name="start")
    end_dt = _normalize_bound(end, is_end=True, name="end")
    if start_dt > end_dt:
        raise InvalidRangeError("start must not be after end")

    return FilterPredicate(
        date_range=DateRange(start=start_dt, end=end_dt),
        dimensions=compose_dimensions(
            category_id=category_id,
            product_id=product_id,
            region=region,
            customer_id=customer_id,
        ),
    )
