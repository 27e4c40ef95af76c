"""Standardized API response wrappers and the error -> status mapping."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from rbi_shared.errors import (
    ConstraintViolation,
    MalformedInput,
    NotFound,
    PartialResolution,
    RegistryError,
    StorageUnavailable,
)

T = TypeVar("T")

ERROR_STATUS: dict[type[RegistryError], int] = {
    NotFound: 404,
    ConstraintViolation: 409,
    MalformedInput: 422,
    PartialResolution: 422,
    StorageUnavailable: 503,
}


def status_for(exc: RegistryError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


class ResponseMeta(BaseModel):
    total_count: int | None = None
    source: str | None = None
    last_updated: datetime | None = None


class ApiResponse(BaseModel, Generic[T]):
    data: T
    meta: ResponseMeta = Field(default_factory=ResponseMeta)
    links: dict[str, str] = Field(default_factory=dict)


class ErrorDetail(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)


class ApiError(BaseModel):
    error: ErrorDetail


def wrap_response(
    data: Any,
    *,
    total_count: int | None = None,
    source: str | None = None,
    last_updated: datetime | None = None,
    links: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build a standardized API response dict."""
    meta = {
        "total_count": total_count,
        "source": source,
        "last_updated": last_updated.isoformat() if last_updated else None,
    }
    return {
        "data": data,
        "meta": {k: v for k, v in meta.items() if v is not None},
        "links": links or {},
    }


def error_response(
    code: str,
    message: str,
    *,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """Build a standardized error response dict."""
    err: dict[str, Any] = {"code": code, "message": message}
    if details:
        err["details"] = details
    return {"error": err}
