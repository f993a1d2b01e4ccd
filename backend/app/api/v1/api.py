from fastapi import APIRouter

from backend.app.api.v1.endpoints import charts, dashboard, options

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(options.router, prefix="/options", tags=["options"])
api_router.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])
api_router.include_router(charts.router, prefix="/charts", tags=["charts"])
