"""rbi_shared.derivation — rule table and evaluation engine for derived fields."""

from rbi_shared.derivation.engine import DerivationEngine, income_class
from rbi_shared.derivation.rules import (
    DERIVED_HOUSEHOLD_FIELDS,
    DERIVED_RESIDENT_FIELDS,
    RESIDENT_RULES,
    EvaluationContext,
    Rule,
)

__all__ = [
    "DerivationEngine",
    "income_class",
    "DERIVED_HOUSEHOLD_FIELDS",
    "DERIVED_RESIDENT_FIELDS",
    "RESIDENT_RULES",
    "EvaluationContext",
    "Rule",
]
