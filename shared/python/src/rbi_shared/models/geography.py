"""
models/geography.py — Pydantic models for the four geo_* tables.

Every node carries its provenance: rows read from a PSGC extract are
Provenance.EXTRACT, placeholders made by the reconciliation repair pass are
Provenance.SYNTHESIZED and may be replaced by authoritative rows later.
Models are deliberately permissive; the Geography Store is what enforces the
independence rule and referential closure.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict

from rbi_shared.constants import GeoLevel, Provenance

# Columns that do not take part in change detection
_BOOKKEEPING = {"created_at", "updated_at"}


class GeographyNode(BaseModel):
    """Common shape of every geography row."""

    model_config = ConfigDict(frozen=True)

    level: ClassVar[GeoLevel]

    code: str
    name: str
    provenance: Provenance = Provenance.EXTRACT
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def parent_code(self) -> str | None:
        return None

    @property
    def is_synthesized(self) -> bool:
        return self.provenance is Provenance.SYNTHESIZED

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "GeographyNode":
        return cls(**row)

    def to_insert_dict(self) -> dict[str, Any]:
        d = self.model_dump(exclude=_BOOKKEEPING)
        d["provenance"] = self.provenance.value
        return d

    def same_content(self, other: "GeographyNode") -> bool:
        """True when both nodes would store identical rows."""
        return type(self) is type(other) and self.to_insert_dict() == other.to_insert_dict()


class Region(GeographyNode):
    level: ClassVar[GeoLevel] = GeoLevel.REGION


class Province(GeographyNode):
    level: ClassVar[GeoLevel] = GeoLevel.PROVINCE

    region_code: str

    @property
    def parent_code(self) -> str | None:
        return self.region_code


class CityMunicipality(GeographyNode):
    """
    A city or municipality.

    Independent cities report straight to their region: province_code is
    None and region_code carries the region. Component cities and
    municipalities carry province_code and leave region_code None.
    """

    level: ClassVar[GeoLevel] = GeoLevel.CITY

    province_code: str | None = None
    region_code: str | None = None
    is_independent: bool = False
    city_class: str = "Municipality"

    @property
    def parent_code(self) -> str | None:
        return self.province_code


class Barangay(GeographyNode):
    level: ClassVar[GeoLevel] = GeoLevel.BARANGAY

    city_code: str
    urban_rural_status: str | None = None

    @property
    def parent_code(self) -> str | None:
        return self.city_code


NODE_TYPES: dict[GeoLevel, type[GeographyNode]] = {
    GeoLevel.REGION: Region,
    GeoLevel.PROVINCE: Province,
    GeoLevel.CITY: CityMunicipality,
    GeoLevel.BARANGAY: Barangay,
}


def node_from_row(level: GeoLevel, row: dict[str, Any]) -> GeographyNode:
    return NODE_TYPES[level].from_db_row(row)


class HierarchyView(BaseModel):
    """Resolved address chain for one barangay."""

    region_code: str
    region_name: str
    province_code: str | None = None
    province_name: str | None = None
    city_code: str
    city_name: str
    is_independent_city: bool
    barangay_code: str
    barangay_name: str

    @property
    def full_address(self) -> str:
        parts = [self.barangay_name, self.city_name]
        if self.province_name:
            parts.append(self.province_name)
        parts.append(self.region_name)
        return ", ".join(parts)

    def to_response_dict(self) -> dict[str, Any]:
        d = self.model_dump()
        d["full_address"] = self.full_address
        return d
