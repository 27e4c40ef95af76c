"""
derivation/rules.py — Declarative rule table for resident classifications.

Each derived resident field is one Rule: the input fields it reads, a
predicate over (row, context), and whether it depends on the evaluation
instant. The engine indexes rules by input field to decide what to
re-evaluate after an update; time-dependent rules are also what the periodic
sweep re-runs.

Null handling is explicit in each predicate: a missing input never raises,
it takes the branch documented on the predicate.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date
from typing import Any, Literal

from rbi_shared.constants import (
    EMPLOYED_STATUSES,
    HIGHER_EDUCATION_LEVELS,
    JOBSEEKER_STATUSES,
    LABOR_FORCE_STATUSES,
    OSC_AGE_RANGE,
    OSY_AGE_RANGE,
    OUT_OF_SCHOOL_STATUSES,
)
from rbi_shared.time_utils import age_at

OsyPolicy = Literal["strict", "inclusive"]


@dataclass(frozen=True)
class EvaluationContext:
    """Everything a rule may depend on besides the resident row itself."""

    as_of: date
    osy_policy: OsyPolicy = "strict"
    senior_citizen_age: int = 60

    def age(self, row: Mapping[str, Any]) -> int | None:
        birth_date = row.get("birth_date")
        if birth_date is None:
            return None
        return age_at(self.as_of, birth_date)


Predicate = Callable[[Mapping[str, Any], EvaluationContext], bool]


@dataclass(frozen=True)
class Rule:
    name: str
    inputs: frozenset[str]
    predicate: Predicate
    time_dependent: bool = False

    def evaluate(self, row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
        return bool(self.predicate(row, ctx))


def _in_band(age: int | None, band: tuple[int, int]) -> bool:
    return age is not None and band[0] <= age <= band[1]


def _senior_citizen(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    # No birth date, no age: not a senior
    age = ctx.age(row)
    return age is not None and age >= ctx.senior_citizen_age


def _employed(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    return row.get("employment_status") in EMPLOYED_STATUSES


def _unemployed(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    return row.get("employment_status") == "unemployed"


def _in_labor_force(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    return row.get("employment_status") in LABOR_FORCE_STATUSES


def _out_of_school_child(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    """
    Ages 6-15 not currently studying. A child with no education status on
    record has no enrolment on record, so counts as out of school.
    """
    if not _in_band(ctx.age(row), OSC_AGE_RANGE):
        return False
    return row.get("education_status") != "currently_studying"


def _out_of_school_youth(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    """
    Ages 15-24, not studying or dropped out, without college or
    post-graduate education, and outside the labor force.

    strict:    any labor-force status disqualifies, unemployed included.
    inclusive: jobseekers (unemployed, looking_for_work) still qualify.

    Unset education status never qualifies; unset education level and unset
    employment status pass their tests.
    """
    if not _in_band(ctx.age(row), OSY_AGE_RANGE):
        return False
    if row.get("education_status") not in OUT_OF_SCHOOL_STATUSES:
        return False
    if row.get("education_level") in HIGHER_EDUCATION_LEVELS:
        return False
    status = row.get("employment_status")
    if status is None or status not in LABOR_FORCE_STATUSES:
        return True
    return ctx.osy_policy == "inclusive" and status in JOBSEEKER_STATUSES


def _person_with_disability(row: Mapping[str, Any], ctx: EvaluationContext) -> bool:
    return bool(row.get("has_disability"))


RESIDENT_RULES: tuple[Rule, ...] = (
    Rule("is_senior_citizen", frozenset({"birth_date"}), _senior_citizen, time_dependent=True),
    Rule("is_employed", frozenset({"employment_status"}), _employed),
    Rule("is_unemployed", frozenset({"employment_status"}), _unemployed),
    Rule("is_in_labor_force", frozenset({"employment_status"}), _in_labor_force),
    Rule(
        "is_out_of_school_child",
        frozenset({"birth_date", "education_status"}),
        _out_of_school_child,
        time_dependent=True,
    ),
    Rule(
        "is_out_of_school_youth",
        frozenset({"birth_date", "education_status", "education_level", "employment_status"}),
        _out_of_school_youth,
        time_dependent=True,
    ),
    Rule("is_person_with_disability", frozenset({"has_disability"}), _person_with_disability),
)

DERIVED_RESIDENT_FIELDS: tuple[str, ...] = tuple(rule.name for rule in RESIDENT_RULES)

DERIVED_HOUSEHOLD_FIELDS: tuple[str, ...] = (
    "total_members",
    "total_migrants",
    "monthly_income",
    "income_class",
    "household_name",
)
