"""Map service exceptions onto ``application/problem+json`` responses."""

from __future__ import annotations

import logging
import math

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings
from backend.app.core.errors import DashboardError, InvalidInputError, StoreError
from backend.app.core.i18n import FALLBACK_LANG, translate
from backend.app.schemas.common import ProblemDetail

logger = logging.getLogger(__name__)

PROBLEM_JSON = "application/problem+json"


def _language(request: Request) -> str:
    return getattr(request.state, "language", FALLBACK_LANG)


def problem_response(
    request: Request,
    status_code: int,
    title_key: str,
    detail: str,
    *,
    headers: dict[str, str] | None = None,
    extra: dict[str, object] | None = None,
) -> JSONResponse:
    problem = ProblemDetail(
        title=translate(_language(request), title_key),
        status=status_code,
        detail=detail,
        instance=request.url.path,
    )
    body = problem.model_dump()
    request_id = getattr(request.state, "request_id", None)
    if request_id is not None:
        body["requestId"] = request_id
    if extra:
        body.update(extra)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body),
        media_type=PROBLEM_JSON,
        headers=headers,
    )


async def invalid_input_handler(request: Request, exc: InvalidInputError) -> JSONResponse:
    logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.message)
    return problem_response(request, status.HTTP_400_BAD_REQUEST, exc.title_key, exc.message)


async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc.message)
    retry_after = max(1, math.ceil(settings.STORE_RETRY_MAX_DELAY))
    return problem_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        exc.title_key,
        exc.message,
        headers={"Retry-After": str(retry_after)},
    )


async def dashboard_error_handler(request: Request, exc: DashboardError) -> JSONResponse:
    logger.exception("Unhandled dashboard error on %s %s", request.method, request.url.path)
    return problem_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, exc.title_key, exc.message
    )


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    detail = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
    return problem_response(
        request,
        status.HTTP_400_BAD_REQUEST,
        "errors.invalid_input",
        detail,
        extra={"errors": errors},
    )


def register_error_handlers(app: FastAPI) -> None:
    # Starlette resolves handlers along the exception MRO, most specific first
    app.add_exception_handler(InvalidInputError, invalid_input_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StoreError, store_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(DashboardError, dashboard_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, validation_error_handler)  # type: ignore[arg-type]
