import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from backend.app.api import health
from backend.app.api.v1.api import api_router
from backend.app.core.config import settings
from backend.app.core.error_handlers import register_error_handlers
from backend.app.middleware.language import LanguageMiddleware
from backend.app.middleware.request_id import RequestIDMiddleware

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

app = FastAPI(title="Finance Dashboard API")

# ─── CORS: read-only API, restricted to configured origins ──────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["Content-Type", "Accept", "Accept-Language", "X-Request-ID"],
    expose_headers=["X-Request-ID", "Content-Language"],
)

# ─── Custom middleware (outermost executes first) ─────────────────────────────
app.add_middleware(LanguageMiddleware)
app.add_middleware(RequestIDMiddleware)

register_error_handlers(app)

app.include_router(health.router)
app.include_router(api_router)
