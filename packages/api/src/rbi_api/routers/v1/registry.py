"""Household and resident endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends

from rbi_api.dependencies import get_facade
from rbi_api.responses import wrap_response
from rbi_api.services.facade import RegistryFacade

router = APIRouter(tags=["registry"])


# ---------------------------------------------------------------------------
# Households
# ---------------------------------------------------------------------------


@router.post("/households", status_code=201)
async def create_household(
    payload: dict[str, Any] = Body(...),
    facade: RegistryFacade = Depends(get_facade),
):
    household = facade.create_household(payload)
    return wrap_response(household.model_dump(mode="json"))


@router.get("/households/{code}")
async def get_household(code: str, facade: RegistryFacade = Depends(get_facade)):
    household = facade.get_household(code)
    return wrap_response(household.model_dump(mode="json"))


@router.patch("/households/{code}")
async def update_household_address(
    code: str,
    payload: dict[str, Any] = Body(...),
    facade: RegistryFacade = Depends(get_facade),
):
    """Change address fields; a new barangay_code carries over to every member."""
    household = facade.update_household_address(code, payload)
    return wrap_response(household.model_dump(mode="json"))


@router.get("/households/{code}/members")
async def list_household_members(code: str, facade: RegistryFacade = Depends(get_facade)):
    members = [r.model_dump(mode="json") for r in facade.list_household_members(code)]
    return wrap_response(members, total_count=len(members))


@router.put("/households/{code}/head")
async def set_household_head(
    code: str,
    resident_id: str = Body(..., embed=True),
    facade: RegistryFacade = Depends(get_facade),
):
    household = facade.set_household_head(code, resident_id)
    return wrap_response(household.model_dump(mode="json"))


# ---------------------------------------------------------------------------
# Residents
# ---------------------------------------------------------------------------


@router.post("/residents", status_code=201)
async def create_resident(
    payload: dict[str, Any] = Body(...),
    facade: RegistryFacade = Depends(get_facade),
):
    """Register a resident; derived classifications are computed on write."""
    resident = facade.create_resident(payload)
    return wrap_response(resident.model_dump(mode="json"))


@router.get("/residents/{resident_id}")
async def get_resident(resident_id: str, facade: RegistryFacade = Depends(get_facade)):
    resident = facade.get_resident(resident_id)
    return wrap_response(resident.model_dump(mode="json"))


@router.patch("/residents/{resident_id}")
async def update_resident(
    resident_id: str,
    payload: dict[str, Any] = Body(...),
    facade: RegistryFacade = Depends(get_facade),
):
    resident = facade.update_resident(resident_id, payload)
    return wrap_response(resident.model_dump(mode="json"))


@router.post("/residents/{resident_id}/move")
async def move_resident(
    resident_id: str,
    household_code: str | None = Body(None, embed=True),
    facade: RegistryFacade = Depends(get_facade),
):
    """Move a resident to another household, or out of any household with null."""
    resident = facade.move_resident(resident_id, household_code)
    return wrap_response(resident.model_dump(mode="json"))


@router.post("/residents/{resident_id}/deactivate")
async def deactivate_resident(resident_id: str, facade: RegistryFacade = Depends(get_facade)):
    resident = facade.deactivate_resident(resident_id)
    return wrap_response(resident.model_dump(mode="json"))
