"""
stores/geography.py — The Geography Store.

Holds the four-level PSGC hierarchy (region -> province -> city/municipality
-> barangay) in DuckDB and guards two invariants on every write:

  independence rule   a city is independent exactly when it has no province;
                      an independent city hangs from its region directly.
  referential closure every non-root node's parent exists at the level
                      immediately above it, so every barangay resolves to one
                      region.

The store never repairs anything. Invalid writes raise ConstraintViolation;
the reconciliation pipeline is responsible for presenting valid writes.

Usage:
    store = GeographyStore(db)
    store.upsert_node(Region(code="13", name="NCR"))          # "inserted"
    view = store.resolve_hierarchy("1375010001")
    store.list_children("1375", GeoLevel.CITY)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from rbi_shared.constants import GEO_TABLES, LEVEL_ORDER, GeoLevel, Provenance
from rbi_shared.db import Database, db_now
from rbi_shared.errors import ConstraintViolation, MalformedInput, NotFound
from rbi_shared.models.geography import (
    Barangay,
    CityMunicipality,
    GeographyNode,
    HierarchyView,
    Province,
    node_from_row,
)

log = structlog.get_logger(__name__)

UpsertOutcome = Literal["inserted", "updated", "unchanged"]
NodeLookup = Callable[[GeoLevel, str], GeographyNode | None]


class MissingParent(ConstraintViolation):
    """The node's declared parent does not exist (yet)."""

    def __init__(self, node: GeographyNode, parent_level: GeoLevel, parent_code: str) -> None:
        super().__init__(
            f"{node.level.value} {node.code} references missing "
            f"{parent_level.value} {parent_code}",
            level=node.level.value,
            code=node.code,
            parent_level=parent_level.value,
            parent_code=parent_code,
        )
        self.parent_level = parent_level
        self.parent_code = parent_code


def check_node_constraints(node: GeographyNode, lookup: NodeLookup) -> None:
    """
    Validate *node* against the hierarchy visible through *lookup*.

    Raises:
        MissingParent:       the declared parent does not resolve.
        ConstraintViolation: the independence rule is broken.
    """
    if isinstance(node, Province):
        _require_parent(node, GeoLevel.REGION, node.region_code, lookup)

    elif isinstance(node, CityMunicipality):
        if node.is_independent:
            if node.province_code is not None:
                raise ConstraintViolation(
                    f"independent city {node.code} must not belong to a province",
                    code=node.code,
                    province_code=node.province_code,
                )
            if not node.region_code:
                raise ConstraintViolation(
                    f"independent city {node.code} needs a direct region",
                    code=node.code,
                )
            _require_parent(node, GeoLevel.REGION, node.region_code, lookup)
        else:
            if not node.province_code:
                raise ConstraintViolation(
                    f"city {node.code} is neither independent nor in a province",
                    code=node.code,
                )
            if node.region_code is not None:
                raise ConstraintViolation(
                    f"component city {node.code} must not carry a direct region",
                    code=node.code,
                    region_code=node.region_code,
                )
            _require_parent(node, GeoLevel.PROVINCE, node.province_code, lookup)

    elif isinstance(node, Barangay):
        _require_parent(node, GeoLevel.CITY, node.city_code, lookup)


def _require_parent(
    node: GeographyNode,
    parent_level: GeoLevel,
    parent_code: str | None,
    lookup: NodeLookup,
) -> None:
    if not parent_code or lookup(parent_level, parent_code) is None:
        raise MissingParent(node, parent_level, parent_code or "")


@dataclass
class GeographySnapshot:
    """In-memory copy of the whole hierarchy, keyed by level then code."""

    nodes: dict[GeoLevel, dict[str, GeographyNode]] = field(
        default_factory=lambda: {level: {} for level in LEVEL_ORDER}
    )

    def get(self, level: GeoLevel, code: str) -> GeographyNode | None:
        return self.nodes[level].get(code)

    def has(self, level: GeoLevel, code: str) -> bool:
        return code in self.nodes[level]

    def codes(self, level: GeoLevel) -> set[str]:
        return set(self.nodes[level])

    def put(self, node: GeographyNode) -> None:
        self.nodes[node.level][node.code] = node

    def count(self, level: GeoLevel) -> int:
        return len(self.nodes[level])


class GeographyStore:
    """Constraint-checked access to the geo_* tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find_node(self, level: GeoLevel, code: str) -> GeographyNode | None:
        row = self._db.fetch_one(f"SELECT * FROM {GEO_TABLES[level]} WHERE code = ?", [code])
        return node_from_row(level, row) if row else None

    def get_node(self, level: GeoLevel, code: str) -> GeographyNode:
        node = self.find_node(level, code)
        if node is None:
            raise NotFound(f"{level.value} {code} not found", level=level.value, code=code)
        return node

    def count(self, level: GeoLevel) -> int:
        return int(self._db.fetch_value(f"SELECT COUNT(*) FROM {GEO_TABLES[level]}"))

    def snapshot(self) -> GeographySnapshot:
        snap = GeographySnapshot()
        for level in LEVEL_ORDER:
            for row in self._db.fetch_all(f"SELECT * FROM {GEO_TABLES[level]}"):
                snap.put(node_from_row(level, row))
        return snap

    def resolve_hierarchy(self, barangay_code: str) -> HierarchyView:
        """
        Resolve a barangay to its full address chain.

        Raises:
            NotFound: unknown barangay code, or a chain that does not reach a region.
        """
        row = self._db.fetch_one(
            """
            SELECT
                b.code AS barangay_code, b.name AS barangay_name,
                c.code AS city_code, c.name AS city_name,
                c.is_independent AS is_independent_city,
                p.code AS province_code, p.name AS province_name,
                r.code AS region_code, r.name AS region_name
            FROM geo_barangays b
            LEFT JOIN geo_cities c ON c.code = b.city_code
            LEFT JOIN geo_provinces p ON p.code = c.province_code
            LEFT JOIN geo_regions r ON r.code = COALESCE(p.region_code, c.region_code)
            WHERE b.code = ?
            """,
            [barangay_code],
        )
        if row is None:
            raise NotFound(f"barangay {barangay_code} not found", code=barangay_code)
        if row["city_code"] is None or row["region_code"] is None:
            raise NotFound(
                f"barangay {barangay_code} does not resolve to a region",
                code=barangay_code,
            )
        return HierarchyView(**row)

    def list_children(self, parent_code: str | None, level: GeoLevel) -> list[GeographyNode]:
        """
        Nodes of *level* directly under *parent_code*.

        Regions are roots (parent_code None). Cities under a region code are
        that region's independent cities.
        """
        table = GEO_TABLES[level]
        if level is GeoLevel.REGION:
            rows = self._db.fetch_all(f"SELECT * FROM {table} ORDER BY name, code")
        elif parent_code is None:
            raise MalformedInput(f"listing {level.value} nodes requires a parent code")
        elif level is GeoLevel.PROVINCE:
            rows = self._db.fetch_all(
                f"SELECT * FROM {table} WHERE region_code = ? ORDER BY name, code",
                [parent_code],
            )
        elif level is GeoLevel.CITY:
            rows = self._db.fetch_all(
                f"""
                SELECT * FROM {table}
                WHERE province_code = ? OR (is_independent AND region_code = ?)
                ORDER BY name, code
                """,
                [parent_code, parent_code],
            )
        else:
            rows = self._db.fetch_all(
                f"SELECT * FROM {table} WHERE city_code = ? ORDER BY name, code",
                [parent_code],
            )
        return [node_from_row(level, row) for row in rows]

    # ------------------------------------------------------------------
    # References
    # ------------------------------------------------------------------

    def reference_count(self, level: GeoLevel, code: str) -> int:
        """Inbound references: child nodes, plus registry rows for barangays."""
        if level is GeoLevel.REGION:
            sql = """
                SELECT (SELECT COUNT(*) FROM geo_provinces WHERE region_code = ?)
                     + (SELECT COUNT(*) FROM geo_cities WHERE is_independent AND region_code = ?)
            """
            params = [code, code]
        elif level is GeoLevel.PROVINCE:
            sql = "SELECT COUNT(*) FROM geo_cities WHERE province_code = ?"
            params = [code]
        elif level is GeoLevel.CITY:
            sql = "SELECT COUNT(*) FROM geo_barangays WHERE city_code = ?"
            params = [code]
        else:
            sql = """
                SELECT (SELECT COUNT(*) FROM households WHERE barangay_code = ?)
                     + (SELECT COUNT(*) FROM residents WHERE barangay_code = ?)
            """
            params = [code, code]
        return int(self._db.fetch_value(sql, params))

    def is_referenced(self, level: GeoLevel, code: str) -> bool:
        return self.reference_count(level, code) > 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_node(self, node: GeographyNode) -> UpsertOutcome:
        """
        Insert or update one node.

        Raises:
            ConstraintViolation: the resulting state would break an invariant.
        """
        with self._db.transaction():
            check_node_constraints(node, self.find_node)
            existing = self.find_node(node.level, node.code)
            if existing is not None and existing.same_content(node):
                return "unchanged"
            now = db_now()
            values = node.to_insert_dict()
            table = GEO_TABLES[node.level]
            if existing is None:
                columns = [*values, "created_at", "updated_at"]
                placeholders = ", ".join("?" for _ in columns)
                self._db.execute(
                    f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
                    [*values.values(), now, now],
                )
                return "inserted"
            assignments = ", ".join(f"{col} = ?" for col in values if col != "code")
            params: list[Any] = [v for col, v in values.items() if col != "code"]
            self._db.execute(
                f"UPDATE {table} SET {assignments}, updated_at = ? WHERE code = ?",
                [*params, now, node.code],
            )
            if existing.provenance is not node.provenance:
                log.info(
                    "node_provenance_changed",
                    level=node.level.value,
                    code=node.code,
                    old=existing.provenance.value,
                    new=node.provenance.value,
                )
            return "updated"

    def upsert_nodes(self, nodes: Iterable[GeographyNode]) -> list[UpsertOutcome]:
        """Upsert a chunk in one transaction; any violation rolls back the whole chunk."""
        with self._db.transaction():
            return [self.upsert_node(node) for node in nodes]

    def delete_node(self, level: GeoLevel, code: str) -> None:
        """
        Delete a node that nothing references.

        Raises:
            NotFound:            unknown code.
            ConstraintViolation: the node still has inbound references.
        """
        with self._db.transaction():
            self.get_node(level, code)
            refs = self.reference_count(level, code)
            if refs:
                raise ConstraintViolation(
                    f"{level.value} {code} is still referenced {refs} time(s)",
                    level=level.value,
                    code=code,
                    references=refs,
                )
            self._db.execute(f"DELETE FROM {GEO_TABLES[level]} WHERE code = ?", [code])
        log.info("node_deleted", level=level.value, code=code)

    def unreferenced_placeholders(self) -> list[tuple[GeoLevel, str]]:
        """Synthesized nodes with no inbound references, children first."""
        found: list[tuple[GeoLevel, str]] = []
        for level in reversed(LEVEL_ORDER):
            rows = self._db.fetch_all(
                f"SELECT code FROM {GEO_TABLES[level]} WHERE provenance = ? ORDER BY code",
                [Provenance.SYNTHESIZED.value],
            )
            found.extend(
                (level, row["code"]) for row in rows if not self.is_referenced(level, row["code"])
            )
        return found

    # ------------------------------------------------------------------
    # Integrity audit
    # ------------------------------------------------------------------

    def audit(self) -> dict[str, Any]:
        """
        Integrity report over the committed hierarchy.

        Every list is expected to be empty; non-empty lists mean the tables
        were written around the store.
        """
        counts = {level.value: self.count(level) for level in LEVEL_ORDER}
        synthesized = {
            level.value: int(
                self._db.fetch_value(
                    f"SELECT COUNT(*) FROM {GEO_TABLES[level]} WHERE provenance = ?",
                    [Provenance.SYNTHESIZED.value],
                )
            )
            for level in LEVEL_ORDER
        }

        def codes(sql: str) -> list[str]:
            return [row["code"] for row in self._db.fetch_all(sql)]

        report = {
            "counts": counts,
            "synthesized": synthesized,
            "orphaned_provinces": codes(
                """
                SELECT p.code FROM geo_provinces p
                LEFT JOIN geo_regions r ON r.code = p.region_code
                WHERE r.code IS NULL ORDER BY p.code
                """
            ),
            "orphaned_cities": codes(
                """
                SELECT c.code FROM geo_cities c
                LEFT JOIN geo_provinces p ON p.code = c.province_code
                LEFT JOIN geo_regions r ON r.code = c.region_code
                WHERE (NOT c.is_independent AND p.code IS NULL)
                   OR (c.is_independent AND r.code IS NULL)
                ORDER BY c.code
                """
            ),
            "independence_violations": codes(
                """
                SELECT code FROM geo_cities
                WHERE (is_independent AND province_code IS NOT NULL)
                   OR (NOT is_independent AND province_code IS NULL)
                ORDER BY code
                """
            ),
            "orphaned_barangays": codes(
                """
                SELECT b.code FROM geo_barangays b
                LEFT JOIN geo_cities c ON c.code = b.city_code
                WHERE c.code IS NULL ORDER BY b.code
                """
            ),
        }
        report["healthy"] = not any(
            report[key]
            for key in (
                "orphaned_provinces",
                "orphaned_cities",
                "independence_violations",
                "orphaned_barangays",
            )
        )
        return report
