from __future__ import annotations

from datetime import datetime, timezone

from fastapi import Request

from backend.app.core.config import settings
from backend.app.core.i18n import FALLBACK_LANG

OPTIONS_CACHE_CONTROL = "private, max-age=30"


def get_now() -> datetime:
    """Reference instant for overdue/upcoming logic; overridden in tests."""
    return datetime.now(timezone.utc)


def get_language(request: Request) -> str:
    return getattr(request.state, "language", FALLBACK_LANG)


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def aggregate_cache_control(max_ttl: int = 60) -> str:
    """Cache-Control for summary and chart responses.

    The TTL follows ``CACHE_TTL_SECONDS`` clamped to ``[10, max_ttl]``, with a
    stale-while-revalidate window of half the TTL (at least 5 seconds).
    """
    if not settings.CACHE_ENABLED:
        return "private, no-store"
    ttl = min(max_ttl, max(10, settings.CACHE_TTL_SECONDS))
    stale = max(5, round(ttl / 2))
    return f"private, max-age={ttl}, stale-while-revalidate={stale}"
