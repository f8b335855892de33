"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.admins import router as admins_router
from app.api.v1.analytics import router as analytics_router
from app.api.v1.auth import router as auth_router
from app.api.v1.cache import router as cache_router
from app.api.v1.leads import admin_router as leads_admin_router
from app.api.v1.leads import public_router as leads_public_router
from app.api.v1.system import router as system_router
from app.api.v1.tracking import router as tracking_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(admins_router)
v1_router.include_router(auth_router)
v1_router.include_router(leads_public_router)
v1_router.include_router(leads_admin_router)
v1_router.include_router(tracking_router)
v1_router.include_router(analytics_router)
v1_router.include_router(cache_router)
v1_router.include_router(system_router)
