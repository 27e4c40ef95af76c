from fastapi import APIRouter

from rbi_api.routers.v1 import admin, geography, registry

v1_router = APIRouter(prefix="/v1")

v1_router.include_router(geography.router)
v1_router.include_router(registry.router)
v1_router.include_router(admin.router)
