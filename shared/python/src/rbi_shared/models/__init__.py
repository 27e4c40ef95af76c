"""
rbi_shared.models — Pydantic models matching each database table.

These models are used by:
- rbi_shared.stores: validate rows before writing to DuckDB
- packages/pipeline: build reconciliation candidates from extract rows
- packages/api: serialize query results into API responses

Row models provide:
  .from_db_row(row: dict) -> Model
"""

from rbi_shared.models.geography import (
    NODE_TYPES,
    Barangay,
    CityMunicipality,
    GeographyNode,
    HierarchyView,
    Province,
    Region,
    node_from_row,
)
from rbi_shared.models.registry import (
    Household,
    HouseholdCreate,
    Resident,
    ResidentCreate,
    ResidentUpdate,
)

__all__ = [
    "NODE_TYPES",
    "GeographyNode",
    "Region",
    "Province",
    "CityMunicipality",
    "Barangay",
    "HierarchyView",
    "node_from_row",
    "Household",
    "HouseholdCreate",
    "Resident",
    "ResidentCreate",
    "ResidentUpdate",
]
