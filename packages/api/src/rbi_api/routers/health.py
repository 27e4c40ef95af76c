"""Health check endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from rbi_shared.db import Database
from rbi_shared.errors import StorageUnavailable

from rbi_api import __version__
from rbi_api.dependencies import get_db

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    return {"status": "ok", "version": __version__}


@router.get("/ready")
async def ready(db: Database = Depends(get_db)):
    try:
        db.fetch_value("SELECT 1")
    except StorageUnavailable as exc:
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": exc.message})
    return {"status": "ready"}
