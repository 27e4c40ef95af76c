"""Batch job triggers."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from rbi_api.dependencies import get_facade
from rbi_api.responses import wrap_response
from rbi_api.services.facade import RegistryFacade

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/reconciliation")
async def run_reconciliation(
    dry_run: bool = Query(False),
    extract_dir: str | None = Query(None),
    facade: RegistryFacade = Depends(get_facade),
):
    """Reconcile the hierarchy against the configured PSGC extracts."""
    report = await facade.run_reconciliation(extract_dir=extract_dir, dry_run=dry_run)
    return wrap_response(report.to_dict(), source="psgc")


@router.post("/sweep")
async def run_derivation_sweep(
    as_of: date | None = Query(None),
    facade: RegistryFacade = Depends(get_facade),
):
    """Re-evaluate age-dependent classifications as of a date (default today)."""
    report = await facade.run_derivation_sweep(as_of)
    return wrap_response(report.to_dict())
