from fastapi import APIRouter

from eacz_registry.modules.applicants.router import router as applicants_router
from eacz_registry.modules.applications.admin_router import router as admin_applications_router
from eacz_registry.modules.applications.router import router as applications_router
from eacz_registry.modules.auth import router as auth_router
from eacz_registry.modules.naming_series.router import router as naming_series_router

api_router = APIRouter()

api_router.include_router(auth_router, prefix="/auth", tags=["Authentication"])

api_router.include_router(applicants_router, prefix="/applicants", tags=["Applicants"])

api_router.include_router(applications_router, prefix="/applications", tags=["Applications"])

api_router.include_router(
    admin_applications_router,
    prefix="/admin/applications",
    tags=["Admin - Applications"],
)

api_router.include_router(
    naming_series_router,
    prefix="/admin/naming-series",
    tags=["Admin - Identifier Series"],
)
