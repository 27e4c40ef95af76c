"""
pipelines/reconciliation.py — PSGC extracts -> Geography Store.

Takes the four level extracts and brings the committed hierarchy in line
with them without ever breaking the independence rule or referential
closure:

  1. Levels are processed parent first: regions, provinces, cities,
     barangays. Each level's rows are normalized, malformed rows counted and
     skipped, duplicates collapsed (last row wins).
  2. Candidates are validated in chunks on worker threads against an
     immutable snapshot of {committed state} ∪ {nodes committed earlier in
     this run}. Validation decides ready / unchanged / pending / conflict /
     rejected; only the single loader writes.
  3. Repair pass, parents first: a pending node whose parent is still
     missing gets placeholder parents synthesized (provenance SYNTHESIZED)
     so it becomes addressable. With synthesis disabled it is reported as
     a PartialResolution instead.
  4. Placeholders no longer referenced by anything are pruned.

Re-running on the same extracts converges: every row comes back
"unchanged" and nothing is synthesized or pruned.

Usage:
    from rbi_pipeline.pipelines.reconciliation import run
    report = await run(extract_dir="./data/psgc")
    report = await run(extracts={GeoLevel.REGION: df, ...}, db=db, dry_run=True)
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import polars as pl

from rbi_shared.config import settings
from rbi_shared.constants import LEVEL_ORDER, GeoLevel
from rbi_shared.db import Database, get_database
from rbi_shared.errors import ConstraintViolation, MalformedInput, PartialResolution
from rbi_shared.models.geography import GeographyNode
from rbi_shared.stores.geography import GeographySnapshot, GeographyStore
from rbi_shared.time_utils import utcnow
from rbi_pipeline.loaders.geography_loader import GeographyLoader
from rbi_pipeline.loaders.supabase_loader import LoadResult, SupabaseLoader
from rbi_pipeline.sources.psgc import PSGCSource
from rbi_pipeline.transforms.hierarchy import (
    Decision,
    build_candidate,
    classify,
    classify_chunk,
    placeholder_chain,
)
from rbi_pipeline.transforms.normalize import canonicalize, dedupe_last, split_malformed
from rbi_pipeline.utils.logging import configure_logging, get_logger

log = get_logger(__name__, pipeline="reconciliation")


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass
class LevelReport:
    level: str
    extracted: int = 0
    malformed: int = 0
    duplicates: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    conflicts: int = 0
    rejected: int = 0
    failed: int = 0
    pending: int = 0
    pending_resolved: int = 0
    synthesized: int = 0
    addressable_pct: float = 0.0

    @property
    def committed(self) -> int:
        return self.inserted + self.updated


@dataclass
class ReconciliationReport:
    run_id: str
    dry_run: bool
    started_at: datetime
    levels: dict[str, LevelReport] = field(default_factory=dict)
    pending_unresolved: list[dict[str, Any]] = field(default_factory=list)
    synthesized: list[dict[str, str]] = field(default_factory=list)
    pruned: list[dict[str, str]] = field(default_factory=list)
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    rejected: list[dict[str, Any]] = field(default_factory=list)
    addressable_pct: float = 0.0
    duration_ms: int = 0
    published: list[dict[str, Any]] = field(default_factory=list)

    def level(self, level: GeoLevel) -> LevelReport:
        return self.levels.setdefault(level.value, LevelReport(level=level.value))

    @property
    def committed(self) -> int:
        """Rows inserted or updated across all levels, placeholders included."""
        return sum(lr.committed for lr in self.levels.values())

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["started_at"] = self.started_at.isoformat()
        d["committed"] = self.committed
        for name, lr in self.levels.items():
            d["levels"][name]["committed"] = lr.committed
        return d


def _pct(part: int, total: int) -> float:
    return round(100.0 * part / total, 2) if total else 100.0


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class ReconciliationEngine:
    """One reconciliation run over a Geography Store."""

    def __init__(
        self,
        store: GeographyStore,
        *,
        batch_size: int | None = None,
        workers: int | None = None,
        max_attempts: int | None = None,
        synthesize: bool | None = None,
        prune: bool | None = None,
        dry_run: bool = False,
    ) -> None:
        self._store = store
        self._batch_size = batch_size or settings.reconcile_batch_size
        self._workers = workers or settings.reconcile_workers
        self._synthesize = settings.synthesize_placeholders if synthesize is None else synthesize
        self._prune = settings.prune_orphan_placeholders if prune is None else prune
        self._dry_run = dry_run
        self._loader = GeographyLoader(
            store,
            batch_size=self._batch_size,
            max_attempts=max_attempts,
            dry_run=dry_run,
        )

    def reconcile(self, extracts: Mapping[GeoLevel, pl.DataFrame | None]) -> ReconciliationReport:
        t0 = time.monotonic()
        report = ReconciliationReport(
            run_id=str(uuid.uuid4()), dry_run=self._dry_run, started_at=utcnow()
        )
        run_log = log.bind(run_id=report.run_id, dry_run=self._dry_run)
        run_log.info("reconcile_start", levels=[lvl.value for lvl in extracts])

        view = self._store.snapshot()
        pending: dict[GeoLevel, dict[str, Decision]] = {lvl: {} for lvl in LEVEL_ORDER}
        extract_codes: dict[GeoLevel, set[str]] = {lvl: set() for lvl in LEVEL_ORDER}

        for level in LEVEL_ORDER:
            self._reconcile_level(level, extracts.get(level), view, pending, extract_codes, report)

        self._repair(view, pending, report)

        if self._prune and not self._dry_run:
            report.pruned = self._prune_placeholders()

        for level in LEVEL_ORDER:
            lr = report.level(level)
            present = sum(1 for code in extract_codes[level] if view.has(level, code))
            lr.addressable_pct = _pct(present, lr.extracted - lr.duplicates)
        report.addressable_pct = report.level(GeoLevel.BARANGAY).addressable_pct

        report.duration_ms = int((time.monotonic() - t0) * 1000)
        run_log.info(
            "reconcile_complete",
            committed=report.committed,
            synthesized=len(report.synthesized),
            pending_unresolved=len(report.pending_unresolved),
            pruned=len(report.pruned),
            addressable_pct=report.addressable_pct,
            duration_ms=report.duration_ms,
        )
        return report

    # ------------------------------------------------------------------
    # Main pass
    # ------------------------------------------------------------------

    def _reconcile_level(
        self,
        level: GeoLevel,
        frame: pl.DataFrame | None,
        view: GeographySnapshot,
        pending: dict[GeoLevel, dict[str, Decision]],
        extract_codes: dict[GeoLevel, set[str]],
        report: ReconciliationReport,
    ) -> None:
        lr = report.level(level)
        df = canonicalize(frame if frame is not None else pl.DataFrame(), level)
        lr.extracted = df.height
        valid, malformed = split_malformed(df, level)
        lr.malformed = malformed.height
        valid, lr.duplicates = dedupe_last(valid)

        known = {lvl: view.codes(lvl) for lvl in (GeoLevel.REGION, GeoLevel.PROVINCE)}
        candidates: list[GeographyNode] = []
        for record in valid.iter_rows(named=True):
            try:
                candidates.append(build_candidate(level, record, known))
            except MalformedInput as exc:
                lr.malformed += 1
                log.warning("malformed_row", level=level.value, **exc.details)
            except ConstraintViolation as exc:
                lr.rejected += 1
                report.rejected.append({"level": level.value, "code": record["code"], "reason": exc.message})
                log.warning("row_rejected", level=level.value, code=record["code"], error=exc.message)
        extract_codes[level] = {c.code for c in candidates}

        ready: list[GeographyNode] = []
        for decision in self._validate(candidates, view):
            node = decision.node
            if decision.outcome == "ready":
                ready.append(node)
            elif decision.outcome == "unchanged":
                lr.unchanged += 1
            elif decision.outcome == "pending":
                lr.pending += 1
                pending[level][node.code] = decision
            elif decision.outcome == "conflict":
                lr.conflicts += 1
                report.conflicts.append({"level": level.value, "code": node.code, "reason": decision.reason})
                log.warning("constraint_conflict", level=level.value, code=node.code, reason=decision.reason)
            else:
                lr.rejected += 1
                report.rejected.append({"level": level.value, "code": node.code, "reason": decision.reason})
                log.warning("row_rejected", level=level.value, code=node.code, error=decision.reason)

        self._apply(self._loader.commit(level, ready), lr, view)
        log.info(
            "reconcile_level_complete",
            level=level.value,
            extracted=lr.extracted,
            inserted=lr.inserted,
            updated=lr.updated,
            unchanged=lr.unchanged,
            pending=lr.pending,
            malformed=lr.malformed,
        )

    def _validate(self, candidates: list[GeographyNode], view: GeographySnapshot) -> list[Decision]:
        """Classify in chunks on worker threads; *view* is only read here."""
        chunks = [
            candidates[i : i + self._batch_size]
            for i in range(0, len(candidates), self._batch_size)
        ]
        if len(chunks) <= 1 or self._workers <= 1:
            return classify_chunk(candidates, view)
        with ThreadPoolExecutor(max_workers=self._workers, thread_name_prefix="reconcile") as pool:
            results = pool.map(lambda chunk: classify_chunk(chunk, view), chunks)
            return [decision for chunk in results for decision in chunk]

    @staticmethod
    def _apply(result: LoadResult, lr: LevelReport, view: GeographySnapshot) -> None:
        lr.inserted += result.inserted
        lr.updated += result.updated
        lr.unchanged += result.unchanged
        lr.failed += result.records_failed
        for node in result.committed:
            view.put(node)

    # ------------------------------------------------------------------
    # Repair pass
    # ------------------------------------------------------------------

    def _repair(
        self,
        view: GeographySnapshot,
        pending: dict[GeoLevel, dict[str, Decision]],
        report: ReconciliationReport,
    ) -> None:
        for level in LEVEL_ORDER:
            if not pending[level]:
                continue
            lr = report.level(level)
            ready: list[GeographyNode] = []
            for earlier in pending[level].values():
                # Re-check one by one: a placeholder made for a sibling may already cover this node
                decision = classify(earlier.node, view)
                node = decision.node
                if decision.outcome in ("ready", "unchanged"):
                    ready.append(node)
                    continue
                if decision.outcome != "pending" or decision.missing_parent is None:
                    lr.rejected += 1
                    report.rejected.append({"level": level.value, "code": node.code, "reason": decision.reason})
                    continue
                if self._synthesize_parents(decision, view, report):
                    ready.append(node)
                else:
                    self._unresolved(decision, report)

            result = self._loader.commit(level, ready)
            self._apply(result, lr, view)
            lr.pending_resolved += len(result.committed)
            log.info(
                "repair_level_complete",
                level=level.value,
                pending=len(pending[level]),
                resolved=len(result.committed),
            )

    def _synthesize_parents(
        self,
        decision: Decision,
        view: GeographySnapshot,
        report: ReconciliationReport,
    ) -> bool:
        assert decision.missing_parent is not None
        parent_level, parent_code = decision.missing_parent
        if not self._synthesize or not parent_code:
            return False
        for placeholder in placeholder_chain(parent_level, parent_code, view):
            result = self._loader.commit(placeholder.level, [placeholder])
            if not result.committed:
                return False
            view.put(placeholder)
            lr = report.level(placeholder.level)
            lr.inserted += result.inserted
            lr.updated += result.updated
            lr.synthesized += 1
            report.synthesized.append({"level": placeholder.level.value, "code": placeholder.code})
            log.info(
                "placeholder_synthesized",
                level=placeholder.level.value,
                code=placeholder.code,
                for_level=decision.node.level.value,
                for_code=decision.node.code,
            )
        return True

    @staticmethod
    def _unresolved(decision: Decision, report: ReconciliationReport) -> None:
        assert decision.missing_parent is not None
        parent_level, parent_code = decision.missing_parent
        exc = PartialResolution(
            f"{decision.node.level.value} {decision.node.code} still lacks "
            f"{parent_level.value} {parent_code}",
            level=decision.node.level.value,
            code=decision.node.code,
            parent_level=parent_level.value,
            parent_code=parent_code,
        )
        report.pending_unresolved.append(exc.details)
        log.warning("pending_unresolved", **exc.details)

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def _prune_placeholders(self) -> list[dict[str, str]]:
        """Delete unreferenced placeholders until none remain (children free their parents)."""
        pruned: list[dict[str, str]] = []
        while True:
            deleted = 0
            for level, code in self._store.unreferenced_placeholders():
                if self._store.is_referenced(level, code):
                    continue
                self._store.delete_node(level, code)
                deleted += 1
                pruned.append({"level": level.value, "code": code})
                log.info("placeholder_pruned", level=level.value, code=code)
            if not deleted:
                return pruned


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def load_extracts(
    extract_dir: str | Path | None = None,
    *,
    base_url: str | None = None,
) -> dict[GeoLevel, pl.DataFrame]:
    """Read all four level extracts (missing files yield empty frames)."""
    frames: dict[GeoLevel, pl.DataFrame] = {}
    for level in LEVEL_ORDER:
        source = PSGCSource(level, extract_dir=extract_dir, base_url=base_url)
        frames[level] = await source.run()
    return frames


async def run(
    extract_dir: str | Path | None = None,
    *,
    base_url: str | None = None,
    extracts: Mapping[GeoLevel, pl.DataFrame | None] | None = None,
    db: Database | None = None,
    dry_run: bool = False,
    publish: bool = False,
    synthesize: bool | None = None,
    prune: bool | None = None,
    batch_size: int | None = None,
    workers: int | None = None,
) -> ReconciliationReport:
    """
    Reconcile the Geography Store against PSGC extracts.

    Args:
        extract_dir: Directory holding the four CSV extracts (default: settings).
        base_url:    Read extracts over HTTP instead of from disk.
        extracts:    Pre-loaded frames per level; skips the sources entirely.
        db:          Database handle (default: the process singleton).
        dry_run:     Validate and report without writing.
        publish:     Mirror the geography tables to Supabase afterwards.

    Raises:
        StorageUnavailable: the store could not be reached or written.
    """
    configure_logging()
    if extracts is None:
        extracts = await load_extracts(extract_dir, base_url=base_url)

    database = db or get_database()
    engine = ReconciliationEngine(
        GeographyStore(database),
        batch_size=batch_size,
        workers=workers,
        synthesize=synthesize,
        prune=prune,
        dry_run=dry_run,
    )
    report = engine.reconcile(extracts)

    if publish and not dry_run:
        results = await SupabaseLoader().publish_geography(database)
        report.published = [r.to_dict() for r in results]
    return report
