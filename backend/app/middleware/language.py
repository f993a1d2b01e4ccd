"""Accept-Language detection middleware."""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from backend.app.core.i18n import FALLBACK_LANG, SUPPORTED_LANGUAGES


class LanguageMiddleware(BaseHTTPMiddleware):
    """Resolve ``Accept-Language`` to ``en`` or ``pt`` on ``request.state.language``.

    The resolved language is echoed back via ``Content-Language``.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        language = parse_preferred(request.headers.get("Accept-Language", ""))
        request.state.language = language

        response = await call_next(request)
        response.headers["Content-Language"] = language
        return response


def parse_preferred(header: str) -> str:
    """Return the highest-weighted supported language in an Accept-Language header."""
    candidates: list[tuple[float, int, str]] = []
    for position, part in enumerate(header.split(",")):
        pieces = part.split(";")
        tag = pieces[0].strip().lower()
        if not tag:
            continue
        weight = 1.0
        for param in pieces[1:]:
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    weight = float(value)
                except ValueError:
                    weight = 0.0
        # Match full tag or primary subtag (e.g. "pt-BR" -> "pt")
        primary = tag.split("-")[0]
        if tag in SUPPORTED_LANGUAGES:
            candidates.append((weight, -position, tag))
        elif primary in SUPPORTED_LANGUAGES:
            candidates.append((weight, -position, primary))
    candidates = [c for c in candidates if c[0] > 0]
    if not candidates:
        return FALLBACK_LANG
    return max(candidates)[2]
