"""
models/registry.py — Pydantic models for the households and residents tables.

Row models (Household, Resident) mirror the tables and include derived
fields. Write models (HouseholdCreate, ResidentCreate, ResidentUpdate) forbid
unknown keys, so a caller can never smuggle a derived field into a write.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rbi_shared.constants import (
    CIVIL_STATUSES,
    EDUCATION_LEVELS,
    EDUCATION_STATUSES,
    EMPLOYMENT_STATUSES,
    SEXES,
)


def _check_choice(value: str | None, allowed: frozenset[str], field: str) -> str | None:
    if value is None:
        return None
    v = value.strip().lower()
    if v not in allowed:
        raise ValueError(f"{field} must be one of {sorted(allowed)}, got {value!r}")
    return v


class _ResidentInputs(BaseModel):
    """Validators shared by the resident write models."""

    @field_validator("sex", check_fields=False)
    @classmethod
    def _sex(cls, v: str | None) -> str | None:
        return _check_choice(v, SEXES, "sex")

    @field_validator("civil_status", check_fields=False)
    @classmethod
    def _civil_status(cls, v: str | None) -> str | None:
        return _check_choice(v, CIVIL_STATUSES, "civil_status")

    @field_validator("education_status", check_fields=False)
    @classmethod
    def _education_status(cls, v: str | None) -> str | None:
        return _check_choice(v, EDUCATION_STATUSES, "education_status")

    @field_validator("education_level", check_fields=False)
    @classmethod
    def _education_level(cls, v: str | None) -> str | None:
        return _check_choice(v, EDUCATION_LEVELS, "education_level")

    @field_validator("employment_status", check_fields=False)
    @classmethod
    def _employment_status(cls, v: str | None) -> str | None:
        return _check_choice(v, EMPLOYMENT_STATUSES, "employment_status")


class ResidentCreate(_ResidentInputs):
    model_config = ConfigDict(extra="forbid")

    first_name: str = Field(min_length=1)
    middle_name: str | None = None
    last_name: str = Field(min_length=1)
    extension_name: str | None = None
    birth_date: date
    sex: str
    civil_status: str | None = None
    household_code: str | None = None
    barangay_code: str | None = None
    education_status: str | None = None
    education_level: str | None = None
    employment_status: str | None = None
    salary: Decimal | None = Field(default=None, ge=0)
    has_disability: bool = False
    is_migrant: bool = False


class ResidentUpdate(_ResidentInputs):
    """Partial update; only fields explicitly set are applied."""

    model_config = ConfigDict(extra="forbid")

    first_name: str | None = Field(default=None, min_length=1)
    middle_name: str | None = None
    last_name: str | None = Field(default=None, min_length=1)
    extension_name: str | None = None
    birth_date: date | None = None
    sex: str | None = None
    civil_status: str | None = None
    barangay_code: str | None = None
    education_status: str | None = None
    education_level: str | None = None
    employment_status: str | None = None
    salary: Decimal | None = Field(default=None, ge=0)
    has_disability: bool | None = None
    is_migrant: bool | None = None


class Resident(BaseModel):
    """Matches the residents table row exactly."""

    id: str
    first_name: str
    middle_name: str | None = None
    last_name: str
    extension_name: str | None = None
    birth_date: date
    sex: str
    civil_status: str | None = None
    household_code: str | None = None
    barangay_code: str
    education_status: str | None = None
    education_level: str | None = None
    employment_status: str | None = None
    salary: Decimal | None = None
    has_disability: bool = False
    is_migrant: bool = False
    is_active: bool = True

    # Derived, written only by the derivation engine
    is_senior_citizen: bool = False
    is_employed: bool = False
    is_unemployed: bool = False
    is_in_labor_force: bool = False
    is_out_of_school_child: bool = False
    is_out_of_school_youth: bool = False
    is_person_with_disability: bool = False
    derived_as_of: date | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Resident":
        return cls(**row)


class HouseholdCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(min_length=1)
    barangay_code: str = Field(min_length=1)
    house_number: str | None = None
    street_name: str | None = None
    subdivision: str | None = None
    zip_code: str | None = None


class Household(BaseModel):
    """Matches the households table row exactly."""

    code: str
    barangay_code: str
    house_number: str | None = None
    street_name: str | None = None
    subdivision: str | None = None
    zip_code: str | None = None
    head_resident_id: str | None = None
    is_active: bool = True

    # Derived, written only by the derivation engine
    total_members: int = 0
    total_migrants: int = 0
    monthly_income: Decimal = Decimal("0.00")
    income_class: str | None = None
    household_name: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Household":
        return cls(**row)
