"""
constants.py — shared constants used across the stores, pipeline and API.

Geography levels, PSGC code-prefix lengths, the enumerations the registry
accepts, and the household income brackets are defined here so they stay in
sync between Python packages.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Final


class GeoLevel(str, Enum):
    """The four levels of the PSGC hierarchy, parent first."""

    REGION = "region"
    PROVINCE = "province"
    CITY = "city_municipality"
    BARANGAY = "barangay"

    @property
    def parent(self) -> "GeoLevel | None":
        return _PARENT_LEVEL[self]

    @property
    def child(self) -> "GeoLevel | None":
        return _CHILD_LEVEL[self]


# Processing order for reconciliation: parents strictly before children
LEVEL_ORDER: Final[tuple[GeoLevel, ...]] = (
    GeoLevel.REGION,
    GeoLevel.PROVINCE,
    GeoLevel.CITY,
    GeoLevel.BARANGAY,
)

_PARENT_LEVEL: dict[GeoLevel, GeoLevel | None] = {
    GeoLevel.REGION: None,
    GeoLevel.PROVINCE: GeoLevel.REGION,
    GeoLevel.CITY: GeoLevel.PROVINCE,
    GeoLevel.BARANGAY: GeoLevel.CITY,
}

_CHILD_LEVEL: dict[GeoLevel, GeoLevel | None] = {
    GeoLevel.REGION: GeoLevel.PROVINCE,
    GeoLevel.PROVINCE: GeoLevel.CITY,
    GeoLevel.CITY: GeoLevel.BARANGAY,
    GeoLevel.BARANGAY: None,
}

GEO_TABLES: Final[dict[GeoLevel, str]] = {
    GeoLevel.REGION: "geo_regions",
    GeoLevel.PROVINCE: "geo_provinces",
    GeoLevel.CITY: "geo_cities",
    GeoLevel.BARANGAY: "geo_barangays",
}

# ---------------------------------------------------------------------------
# PSGC code structure: leading digits identify each ancestor
#   barangay 1375010001 -> city 137501 -> province 1375 -> region 13
# ---------------------------------------------------------------------------
CODE_PREFIX_LENGTH: Final[dict[GeoLevel, int]] = {
    GeoLevel.REGION: 2,
    GeoLevel.PROVINCE: 4,
    GeoLevel.CITY: 6,
}

PLACEHOLDER_NAMES: Final[dict[GeoLevel, str]] = {
    GeoLevel.REGION: "Region {code}",
    GeoLevel.PROVINCE: "Province {code}",
    GeoLevel.CITY: "City/Municipality {code}",
}


class Provenance(str, Enum):
    """Where a geography node came from."""

    EXTRACT = "extract"
    SYNTHESIZED = "synthesized"


# ---------------------------------------------------------------------------
# Registry enumerations
# ---------------------------------------------------------------------------
SEXES: Final[frozenset[str]] = frozenset({"male", "female"})

CIVIL_STATUSES: Final[frozenset[str]] = frozenset(
    {"single", "married", "divorced", "separated", "widowed", "others"}
)

EMPLOYMENT_STATUSES: Final[frozenset[str]] = frozenset(
    {
        "employed",
        "unemployed",
        "underemployed",
        "self_employed",
        "student",
        "retired",
        "homemaker",
        "unable_to_work",
        "looking_for_work",
        "not_in_labor_force",
    }
)

EDUCATION_STATUSES: Final[frozenset[str]] = frozenset(
    {"currently_studying", "not_studying", "graduated", "dropped_out"}
)

EDUCATION_LEVELS: Final[frozenset[str]] = frozenset(
    {"elementary", "high_school", "college", "post_graduate", "vocational"}
)

EMPLOYED_STATUSES: Final[frozenset[str]] = frozenset({"employed", "self_employed"})

LABOR_FORCE_STATUSES: Final[frozenset[str]] = frozenset(
    {"employed", "self_employed", "unemployed", "underemployed", "looking_for_work"}
)

# Jobless but in the labor force; the inclusive OSY policy accepts these
JOBSEEKER_STATUSES: Final[frozenset[str]] = frozenset({"unemployed", "looking_for_work"})

OUT_OF_SCHOOL_STATUSES: Final[frozenset[str]] = frozenset({"not_studying", "dropped_out"})

HIGHER_EDUCATION_LEVELS: Final[frozenset[str]] = frozenset({"college", "post_graduate"})

# ---------------------------------------------------------------------------
# Age bands
# ---------------------------------------------------------------------------
OSC_AGE_RANGE: Final[tuple[int, int]] = (6, 15)
OSY_AGE_RANGE: Final[tuple[int, int]] = (15, 24)

# ---------------------------------------------------------------------------
# Household income classes, highest bracket first: (class, minimum monthly income)
# ---------------------------------------------------------------------------
INCOME_BRACKETS: Final[tuple[tuple[str, Decimal], ...]] = (
    ("rich", Decimal("219140")),
    ("high_income", Decimal("131484")),
    ("upper_middle_income", Decimal("76669")),
    ("middle_class", Decimal("43828")),
    ("lower_middle_class", Decimal("21194")),
    ("low_income", Decimal("9520")),
)
LOWEST_INCOME_CLASS: Final[str] = "poor"
