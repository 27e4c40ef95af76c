"""FastAPI application factory."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rbi_shared.config import settings
from rbi_shared.errors import RegistryError
from rbi_pipeline.utils.logging import configure_logging

from rbi_api import __version__
from rbi_api.middleware.logging import LoggingMiddleware
from rbi_api.responses import error_response, status_for
from rbi_api.routers.health import router as health_router
from rbi_api.routers.v1 import v1_router

logger = structlog.get_logger()


async def registry_error_handler(request: Request, exc: RegistryError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error("registry_error", path=request.url.path, code=exc.code, error=exc.message)
    return JSONResponse(
        status_code=status,
        content=jsonable_encoder(error_response(exc.code, exc.message, details=exc.details)),
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="RBI API",
        description="Barangay resident registry and PSGC geography API",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)
    app.add_exception_handler(RegistryError, registry_error_handler)

    # Routers
    app.include_router(health_router)
    app.include_router(v1_router)

    logger.info("app_created", cors_origins=settings.cors_origins_list)
    return app


app = create_app()
