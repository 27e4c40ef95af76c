"""
derivation/engine.py — Evaluates the rule table and household aggregates.

The engine is pure: it reads rows and an explicit evaluation instant and
returns the derived values. Persisting them is the Registry Store's job
(synchronously on every write) and the sweep pipeline's (periodically, for
age thresholds crossed without any write).

Usage:
    engine = DerivationEngine()
    derived = engine.evaluate_resident(row, as_of=date(2026, 10, 18))
    changes = engine.reevaluate(row, changed={"employment_status"}, as_of=...)
    totals = engine.household_aggregates(members, head_resident_id="...")
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from datetime import date
from decimal import Decimal
from typing import Any

import structlog

from rbi_shared.config import settings
from rbi_shared.constants import INCOME_BRACKETS, LOWEST_INCOME_CLASS
from rbi_shared.derivation.rules import (
    RESIDENT_RULES,
    EvaluationContext,
    OsyPolicy,
    Rule,
)

log = structlog.get_logger(__name__)


def income_class(monthly_income: Decimal | None) -> str:
    """Income bracket for a household's monthly income; null or negative is the lowest."""
    if monthly_income is None or monthly_income < 0:
        return LOWEST_INCOME_CLASS
    for name, floor in INCOME_BRACKETS:
        if monthly_income >= floor:
            return name
    return LOWEST_INCOME_CLASS


class DerivationEngine:
    """Rule-table evaluator with an input-field dependency index."""

    def __init__(
        self,
        rules: Iterable[Rule] = RESIDENT_RULES,
        *,
        osy_policy: OsyPolicy | None = None,
        senior_citizen_age: int | None = None,
    ) -> None:
        self.rules: tuple[Rule, ...] = tuple(rules)
        self.osy_policy: OsyPolicy = osy_policy or settings.osy_policy
        self.senior_citizen_age = (
            senior_citizen_age if senior_citizen_age is not None else settings.senior_citizen_age
        )
        self._by_input: dict[str, list[Rule]] = defaultdict(list)
        for rule in self.rules:
            for field_name in rule.inputs:
                self._by_input[field_name].append(rule)

    # ------------------------------------------------------------------
    # Dependency graph
    # ------------------------------------------------------------------

    @property
    def derived_fields(self) -> tuple[str, ...]:
        return tuple(rule.name for rule in self.rules)

    @property
    def time_dependent_rules(self) -> tuple[Rule, ...]:
        return tuple(rule for rule in self.rules if rule.time_dependent)

    def dependency_graph(self) -> dict[str, list[str]]:
        """Input field -> names of the rules that read it."""
        return {name: [r.name for r in rules] for name, rules in sorted(self._by_input.items())}

    def rules_affected_by(self, changed: Iterable[str]) -> tuple[Rule, ...]:
        """
        Rules to re-run after *changed* fields were written.

        Time-dependent rules are always included: the write happens at a new
        instant.
        """
        changed = set(changed)
        return tuple(
            rule
            for rule in self.rules
            if rule.time_dependent or rule.inputs & changed
        )

    # ------------------------------------------------------------------
    # Resident evaluation
    # ------------------------------------------------------------------

    def context(self, as_of: date) -> EvaluationContext:
        return EvaluationContext(
            as_of=as_of,
            osy_policy=self.osy_policy,
            senior_citizen_age=self.senior_citizen_age,
        )

    def evaluate_resident(self, row: Mapping[str, Any], as_of: date) -> dict[str, Any]:
        """Every derived field for *row* at *as_of*."""
        return self._run(self.rules, row, as_of)

    def reevaluate(
        self,
        row: Mapping[str, Any],
        changed: Iterable[str],
        as_of: date,
    ) -> dict[str, Any]:
        """Derived fields reachable from *changed* inputs, plus time-dependent ones."""
        return self._run(self.rules_affected_by(changed), row, as_of)

    def evaluate_time_dependent(self, row: Mapping[str, Any], as_of: date) -> dict[str, Any]:
        return self._run(self.time_dependent_rules, row, as_of)

    def _run(self, rules: Iterable[Rule], row: Mapping[str, Any], as_of: date) -> dict[str, Any]:
        ctx = self.context(as_of)
        derived: dict[str, Any] = {rule.name: rule.evaluate(row, ctx) for rule in rules}
        derived["derived_as_of"] = as_of
        return derived

    @staticmethod
    def changed_fields(row: Mapping[str, Any], derived: Mapping[str, Any]) -> list[str]:
        """Derived fields whose value differs from what *row* currently stores."""
        return [
            name
            for name, value in derived.items()
            if name != "derived_as_of" and row.get(name) != value
        ]

    # ------------------------------------------------------------------
    # Household aggregates
    # ------------------------------------------------------------------

    @staticmethod
    def household_aggregates(
        members: Iterable[Mapping[str, Any]],
        head_resident_id: str | None,
    ) -> dict[str, Any]:
        """
        Aggregates over a household's residents. Inactive residents do not
        count; the household name is the head's last name.
        """
        total_members = 0
        total_migrants = 0
        income = Decimal("0.00")
        household_name: str | None = None
        for member in members:
            if member.get("id") == head_resident_id:
                household_name = member.get("last_name")
            if not member.get("is_active", True):
                continue
            total_members += 1
            if member.get("is_migrant"):
                total_migrants += 1
            if member.get("salary") is not None:
                income += Decimal(member["salary"])
        income = income.quantize(Decimal("0.01"))
        return {
            "total_members": total_members,
            "total_migrants": total_migrants,
            "monthly_income": income,
            "income_class": income_class(income),
            "household_name": household_name,
        }
