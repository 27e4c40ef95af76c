"""
transforms/hierarchy.py — Candidate nodes, validation decisions and placeholders.

Turns canonical extract records into GeographyNode candidates, classifies
each candidate against a read-only view of the hierarchy, and builds the
chain of placeholder parents the repair pass needs for a pending node.

Decision outcomes:
  ready      passes both invariants; commit it
  unchanged  identical to the committed node; nothing to write
  pending    declared parent missing from the view; retry in the repair pass
  conflict   an extract-sourced committed node disagrees; the committed node wins
  rejected   breaks the independence rule on its own terms

Usage:
    node = build_candidate(GeoLevel.CITY, record, known={GeoLevel.PROVINCE: {"0128"}})
    decision = classify(node, snapshot)
    if decision.outcome == "pending":
        chain = placeholder_chain(*decision.missing_parent, snapshot)
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from rbi_shared.constants import GeoLevel, Provenance
from rbi_shared.errors import ConstraintViolation, MalformedInput
from rbi_shared.geo import derive_parent_code, parse_flag, placeholder_name
from rbi_shared.models.geography import (
    Barangay,
    CityMunicipality,
    GeographyNode,
    Province,
    Region,
)
from rbi_shared.stores.geography import GeographySnapshot, MissingParent, check_node_constraints

Outcome = Literal["ready", "unchanged", "pending", "conflict", "rejected"]


@dataclass(frozen=True)
class Decision:
    node: GeographyNode
    outcome: Outcome
    reason: str | None = None
    missing_parent: tuple[GeoLevel, str] | None = None


# ---------------------------------------------------------------------------
# Record -> candidate
# ---------------------------------------------------------------------------


def build_candidate(
    level: GeoLevel,
    record: Mapping[str, Any],
    known: Mapping[GeoLevel, Collection[str]] | None = None,
) -> GeographyNode:
    """
    Build the candidate node for one canonical extract record.

    *known* holds committed codes per level and is only used to derive a
    blank parent code for a city.

    Raises:
        MalformedInput:      unrecognised is_independent value.
        ConstraintViolation: an independent city that also names a province.
    """
    known = known or {}
    code, name = record["code"], record["name"]

    if level is GeoLevel.REGION:
        return Region(code=code, name=name)
    if level is GeoLevel.PROVINCE:
        return Province(code=code, name=name, region_code=record["region_code"])
    if level is GeoLevel.BARANGAY:
        return Barangay(
            code=code,
            name=name,
            city_code=record["city_code"],
            urban_rural_status=record.get("urban_rural_status"),
        )

    raw_flag = record.get("is_independent")
    flag = parse_flag(raw_flag)
    if raw_flag is not None and flag is None:
        raise MalformedInput(
            f"city {code} has unrecognised is_independent value {raw_flag!r}",
            code=code,
            is_independent=raw_flag,
        )
    province_code = record.get("province_code")
    city_class = record.get("city_class")

    if flag:
        if province_code:
            raise ConstraintViolation(
                f"city {code} is marked independent but names province {province_code}",
                code=code,
                province_code=province_code,
            )
        region_code = record.get("region_code") or derive_parent_code(
            code, GeoLevel.REGION, known.get(GeoLevel.REGION, ())
        )
        return CityMunicipality(
            code=code,
            name=name,
            region_code=region_code,
            is_independent=True,
            city_class=city_class or "City",
        )

    province_code = province_code or derive_parent_code(
        code, GeoLevel.PROVINCE, known.get(GeoLevel.PROVINCE, ())
    )
    return CityMunicipality(
        code=code,
        name=name,
        province_code=province_code,
        is_independent=False,
        city_class=city_class or "Municipality",
    )


# ---------------------------------------------------------------------------
# Candidate -> decision
# ---------------------------------------------------------------------------


def classify(candidate: GeographyNode, view: GeographySnapshot) -> Decision:
    """Decide what to do with *candidate* given the hierarchy in *view*."""
    existing = view.get(candidate.level, candidate.code)
    authoritative = existing is not None and not existing.is_synthesized

    if (
        authoritative
        and isinstance(existing, CityMunicipality)
        and isinstance(candidate, CityMunicipality)
        and existing.is_independent != candidate.is_independent
    ):
        return Decision(candidate, "conflict", reason="independence flag differs from committed node")

    try:
        check_node_constraints(candidate, view.get)
    except MissingParent as exc:
        if authoritative:
            return Decision(
                candidate,
                "conflict",
                reason=f"declared {exc.parent_level.value} {exc.parent_code} is missing",
            )
        return Decision(
            candidate,
            "pending",
            reason=exc.message,
            missing_parent=(exc.parent_level, exc.parent_code),
        )
    except ConstraintViolation as exc:
        return Decision(candidate, "rejected", reason=exc.message)

    if existing is not None and existing.same_content(candidate):
        return Decision(candidate, "unchanged")
    return Decision(candidate, "ready")


def classify_chunk(candidates: Iterable[GeographyNode], view: GeographySnapshot) -> list[Decision]:
    return [classify(candidate, view) for candidate in candidates]


# ---------------------------------------------------------------------------
# Placeholder synthesis
# ---------------------------------------------------------------------------


def synthesize_node(level: GeoLevel, code: str, view: GeographySnapshot) -> GeographyNode:
    """
    Minimal placeholder for a missing *level* node. Its own parent code is
    derived from the code prefix.
    """
    if level is GeoLevel.BARANGAY:
        raise ValueError(f"barangays are never synthesized ({code})")
    name = placeholder_name(level, code)
    if level is GeoLevel.REGION:
        return Region(code=code, name=name, provenance=Provenance.SYNTHESIZED)
    if level is GeoLevel.PROVINCE:
        return Province(
            code=code,
            name=name,
            region_code=derive_parent_code(code, GeoLevel.REGION, view.codes(GeoLevel.REGION)),
            provenance=Provenance.SYNTHESIZED,
        )
    if level is GeoLevel.CITY:
        return CityMunicipality(
            code=code,
            name=name,
            province_code=derive_parent_code(code, GeoLevel.PROVINCE, view.codes(GeoLevel.PROVINCE)),
            is_independent=False,
            provenance=Provenance.SYNTHESIZED,
        )
    raise ValueError(f"unknown geography level {level!r}")


def placeholder_chain(level: GeoLevel, code: str, view: GeographySnapshot) -> list[GeographyNode]:
    """
    Placeholders needed to make *level*/*code* exist, parents first.

    A synthesized province whose region is also missing brings a
    synthesized region with it, and so on up to the root.
    """
    chain: list[GeographyNode] = []

    def lookup(lvl: GeoLevel, c: str) -> GeographyNode | None:
        found = view.get(lvl, c)
        if found is not None:
            return found
        return next((n for n in chain if n.level is lvl and n.code == c), None)

    current = synthesize_node(level, code, view)
    while True:
        chain.append(current)
        try:
            check_node_constraints(current, lookup)
            break
        except MissingParent as exc:
            current = synthesize_node(exc.parent_level, exc.parent_code, view)
    chain.reverse()
    return chain
