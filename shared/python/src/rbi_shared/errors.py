"""
errors.py — Exception taxonomy shared by the stores, pipeline and API.

Only StorageUnavailable is fatal to a batch run; the others are caught per
row, chunk or resident and surfaced in run reports.
"""

from __future__ import annotations

from typing import Any


class RegistryError(Exception):
    """Base class for all rbi domain errors."""

    code: str = "registry_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ConstraintViolation(RegistryError):
    """A write would break the independence rule or referential closure."""

    code = "constraint_violation"


class NotFound(RegistryError):
    """A code or id does not resolve."""

    code = "not_found"


class MalformedInput(RegistryError):
    """An extract row or payload is missing required fields or has bad values."""

    code = "malformed_input"


class PartialResolution(RegistryError):
    """A dependency chain could not be completed even after the repair pass."""

    code = "partial_resolution"


class StorageUnavailable(RegistryError):
    """The backing database cannot be reached or written."""

    code = "storage_unavailable"
