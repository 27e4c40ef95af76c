"""Geography endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from rbi_shared.constants import GeoLevel

from rbi_api.dependencies import get_facade
from rbi_api.responses import wrap_response
from rbi_api.services.facade import RegistryFacade

router = APIRouter(prefix="/geo", tags=["geography"])


@router.get("/address/{barangay_code}")
async def resolve_address(barangay_code: str, facade: RegistryFacade = Depends(get_facade)):
    """Resolve a barangay to its region, province (if any) and city."""
    view = facade.resolve_address(barangay_code)
    return wrap_response(view.to_response_dict(), source="psgc")


@router.get("/children")
async def list_children(
    level: GeoLevel = Query(..., description="Level of the nodes to list"),
    parent_code: str | None = Query(None, description="Parent code; omit for regions"),
    facade: RegistryFacade = Depends(get_facade),
):
    """List the nodes of one level directly under a parent."""
    nodes = facade.list_children(parent_code or None, level)
    data = [{"level": node.level.value, **node.model_dump(mode="json")} for node in nodes]
    return wrap_response(data, total_count=len(data), source="psgc")
