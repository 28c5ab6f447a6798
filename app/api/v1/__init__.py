"""V1 API router aggregation."""

from fastapi import APIRouter

from app.api.v1.admin_config import router as admin_config_router
from app.api.v1.admin_models import router as admin_models_router
from app.api.v1.admin_users import router as admin_users_router
from app.api.v1.auth import router as auth_router
from app.api.v1.billing import router as billing_router
from app.api.v1.models import router as models_router

v1_router = APIRouter(prefix="/v1")
v1_router.include_router(auth_router)
v1_router.include_router(billing_router)
v1_router.include_router(models_router)
v1_router.include_router(admin_users_router)
v1_router.include_router(admin_models_router)
v1_router.include_router(admin_config_router)
