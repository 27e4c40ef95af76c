"""
tests/test_derivation.py — Rule table, dependency index and household aggregates.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from rbi_shared.derivation.engine import DerivationEngine, income_class
from rbi_shared.derivation.rules import RESIDENT_RULES, EvaluationContext

AS_OF = date(2026, 10, 18)


def _row(**fields):
    row = {
        "birth_date": date(1990, 1, 1),
        "education_status": None,
        "education_level": None,
        "employment_status": None,
        "has_disability": False,
    }
    row.update(fields)
    return row


# ---------------------------------------------------------------------------
# Senior citizen threshold
# ---------------------------------------------------------------------------


class TestSeniorCitizen:
    def test_day_before_sixtieth_birthday(self, engine: DerivationEngine):
        derived = engine.evaluate_resident(_row(birth_date=date(1966, 10, 19)), AS_OF)
        assert derived["is_senior_citizen"] is False

    def test_on_sixtieth_birthday(self, engine: DerivationEngine):
        derived = engine.evaluate_resident(_row(birth_date=date(1966, 10, 18)), AS_OF)
        assert derived["is_senior_citizen"] is True

    def test_configurable_threshold(self):
        engine = DerivationEngine(senior_citizen_age=65)
        derived = engine.evaluate_resident(_row(birth_date=date(1962, 1, 1)), AS_OF)
        assert derived["is_senior_citizen"] is False

    def test_missing_birth_date_is_not_senior(self, engine: DerivationEngine):
        derived = engine.evaluate_resident(_row(birth_date=None), AS_OF)
        assert derived["is_senior_citizen"] is False


# ---------------------------------------------------------------------------
# Employment
# ---------------------------------------------------------------------------


class TestEmployment:
    @pytest.mark.parametrize(
        ("status", "employed", "unemployed", "labor_force"),
        [
            ("employed", True, False, True),
            ("self_employed", True, False, True),
            ("unemployed", False, True, True),
            ("looking_for_work", False, False, True),
            ("underemployed", False, False, True),
            ("student", False, False, False),
            ("retired", False, False, False),
            (None, False, False, False),
        ],
    )
    def test_status_mapping(self, engine, status, employed, unemployed, labor_force):
        derived = engine.evaluate_resident(_row(employment_status=status), AS_OF)
        assert derived["is_employed"] is employed
        assert derived["is_unemployed"] is unemployed
        assert derived["is_in_labor_force"] is labor_force


# ---------------------------------------------------------------------------
# Out-of-school children and youth
# ---------------------------------------------------------------------------


class TestOutOfSchool:
    def test_child_not_studying(self, engine):
        row = _row(birth_date=date(2016, 1, 1), education_status="not_studying")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_child"] is True

    def test_child_studying(self, engine):
        row = _row(birth_date=date(2016, 1, 1), education_status="currently_studying")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_child"] is False

    def test_child_without_status_counts_as_out_of_school(self, engine):
        row = _row(birth_date=date(2016, 1, 1))
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_child"] is True

    def test_five_year_old_is_not_an_osc(self, engine):
        row = _row(birth_date=date(2021, 6, 1), education_status="not_studying")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_child"] is False

    def test_youth_outside_labor_force(self, engine):
        row = _row(
            birth_date=date(2006, 1, 1),
            education_status="dropped_out",
            education_level="high_school",
            employment_status="not_in_labor_force",
        )
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_youth"] is True

    def test_youth_with_college_is_not_osy(self, engine):
        row = _row(birth_date=date(2006, 1, 1), education_status="graduated", education_level="college")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_youth"] is False

    def test_youth_without_education_status_is_not_osy(self, engine):
        row = _row(birth_date=date(2006, 1, 1))
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_youth"] is False

    def test_youth_with_unset_level_and_employment(self, engine):
        row = _row(birth_date=date(2006, 1, 1), education_status="not_studying")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_youth"] is True

    def test_employed_youth_is_not_osy(self, engine):
        row = _row(birth_date=date(2006, 1, 1), education_status="not_studying", employment_status="employed")
        assert engine.evaluate_resident(row, AS_OF)["is_out_of_school_youth"] is False

    def test_jobseeker_depends_on_policy(self):
        row = _row(birth_date=date(2006, 1, 1), education_status="not_studying", employment_status="unemployed")
        strict = DerivationEngine(osy_policy="strict").evaluate_resident(row, AS_OF)
        inclusive = DerivationEngine(osy_policy="inclusive").evaluate_resident(row, AS_OF)
        assert strict["is_out_of_school_youth"] is False
        assert inclusive["is_out_of_school_youth"] is True

    def test_fifteen_year_old_can_be_both(self, engine):
        row = _row(birth_date=date(2011, 1, 1), education_status="dropped_out")
        derived = engine.evaluate_resident(row, AS_OF)
        assert derived["is_out_of_school_child"] is True
        assert derived["is_out_of_school_youth"] is True


# ---------------------------------------------------------------------------
# Dependency index
# ---------------------------------------------------------------------------


class TestDependencyIndex:
    def test_every_rule_is_indexed(self, engine):
        graph = engine.dependency_graph()
        indexed = {name for names in graph.values() for name in names}
        assert indexed == {rule.name for rule in RESIDENT_RULES}

    def test_disability_change_touches_only_its_rule_and_time_rules(self, engine):
        names = {rule.name for rule in engine.rules_affected_by({"has_disability"})}
        assert names == {
            "is_person_with_disability",
            "is_senior_citizen",
            "is_out_of_school_child",
            "is_out_of_school_youth",
        }

    def test_reevaluate_returns_affected_fields_only(self, engine):
        derived = engine.reevaluate(_row(employment_status="employed"), {"employment_status"}, AS_OF)
        assert "is_person_with_disability" not in derived
        assert derived["is_employed"] is True
        assert derived["derived_as_of"] == AS_OF

    def test_time_dependent_rules(self, engine):
        assert {r.name for r in engine.time_dependent_rules} == {
            "is_senior_citizen",
            "is_out_of_school_child",
            "is_out_of_school_youth",
        }

    def test_changed_fields_ignores_derived_as_of(self):
        row = {"is_senior_citizen": False, "derived_as_of": date(2026, 1, 1)}
        derived = {"is_senior_citizen": True, "derived_as_of": AS_OF}
        assert DerivationEngine.changed_fields(row, derived) == ["is_senior_citizen"]

    def test_context_age(self):
        ctx = EvaluationContext(as_of=AS_OF)
        assert ctx.age({"birth_date": date(2000, 10, 19)}) == 25
        assert ctx.age({}) is None


# ---------------------------------------------------------------------------
# Purity
# ---------------------------------------------------------------------------


class TestPurity:
    def test_bookkeeping_columns_are_not_inputs(self, engine):
        assert set(engine.dependency_graph()).isdisjoint({"id", "created_at", "updated_at", "derived_as_of"})

    def test_creation_time_does_not_change_the_result(self, engine):
        inputs = dict(
            birth_date=date(2010, 3, 14),
            education_status="not_enrolled",
            employment_status="unemployed",
            has_disability=True,
        )
        older = _row(id="r-1", created_at=datetime(2019, 1, 5, 8, 0), **inputs)
        newer = _row(id="r-2", created_at=datetime(2026, 10, 17, 21, 30), **inputs)
        assert engine.evaluate_resident(older, AS_OF) == engine.evaluate_resident(newer, AS_OF)


# ---------------------------------------------------------------------------
# Household aggregates
# ---------------------------------------------------------------------------


class TestHouseholdAggregates:
    def test_empty_household(self):
        totals = DerivationEngine.household_aggregates([], None)
        assert totals == {
            "total_members": 0,
            "total_migrants": 0,
            "monthly_income": Decimal("0.00"),
            "income_class": "poor",
            "household_name": None,
        }

    def test_inactive_members_ignored(self):
        members = [
            {"id": "a", "last_name": "Santos", "salary": Decimal("10000"), "is_migrant": True, "is_active": True},
            {"id": "b", "last_name": "Santos", "salary": Decimal("90000"), "is_migrant": True, "is_active": False},
            {"id": "c", "last_name": "Reyes", "salary": None, "is_migrant": False, "is_active": True},
        ]
        totals = DerivationEngine.household_aggregates(members, head_resident_id="c")
        assert totals["total_members"] == 2
        assert totals["total_migrants"] == 1
        assert totals["monthly_income"] == Decimal("10000.00")
        assert totals["income_class"] == "low_income"
        assert totals["household_name"] == "Reyes"


class TestIncomeClass:
    @pytest.mark.parametrize(
        ("income", "expected"),
        [
            (None, "poor"),
            (Decimal("-1"), "poor"),
            (Decimal("0"), "poor"),
            (Decimal("9519.99"), "poor"),
            (Decimal("9520"), "low_income"),
            (Decimal("43828"), "middle_class"),
            (Decimal("219140"), "rich"),
        ],
    )
    def test_brackets(self, income, expected):
        assert income_class(income) == expected
