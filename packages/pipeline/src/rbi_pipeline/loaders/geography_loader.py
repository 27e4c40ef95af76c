"""
loaders/geography_loader.py — Chunked, retried commits into the Geography Store.

Every chunk is one store transaction (all-or-nothing). A chunk that fails
on storage errors is retried with exponential backoff; a chunk that still
fails, or that hits a constraint violation, is replayed row by row so one
bad row cannot sink its neighbours. Only StorageUnavailable on a single row
escapes: that is fatal to the run.

In dry-run mode nothing is written; outcomes are computed against the
committed state instead.

Usage:
    loader = GeographyLoader(store, batch_size=500)
    result = loader.commit(GeoLevel.PROVINCE, nodes)
    print(result.inserted, result.updated, result.records_failed)
"""

from __future__ import annotations

import time
from collections.abc import Sequence

import structlog

from rbi_shared.config import settings
from rbi_shared.constants import GEO_TABLES, GeoLevel
from rbi_shared.errors import ConstraintViolation, StorageUnavailable
from rbi_shared.models.geography import GeographyNode
from rbi_shared.stores.geography import GeographyStore, UpsertOutcome
from rbi_pipeline.loaders.supabase_loader import LoadResult
from rbi_pipeline.utils.retry import retry_call

log = structlog.get_logger(__name__)


class GeographyLoader:
    """The single serialized writer for a reconciliation run."""

    def __init__(
        self,
        store: GeographyStore,
        *,
        batch_size: int | None = None,
        max_attempts: int | None = None,
        dry_run: bool = False,
    ) -> None:
        self._store = store
        self._batch_size = batch_size or settings.reconcile_batch_size
        self._max_attempts = max_attempts or settings.reconcile_max_attempts
        self._dry_run = dry_run

    def commit(self, level: GeoLevel, nodes: Sequence[GeographyNode]) -> LoadResult:
        result = LoadResult(table=GEO_TABLES[level])
        if not nodes:
            return result
        t0 = time.monotonic()

        for start in range(0, len(nodes), self._batch_size):
            chunk = list(nodes[start : start + self._batch_size])
            result.batches_total += 1
            if self._dry_run:
                for node in chunk:
                    self._record(result, node, self._simulate(node))
                continue
            try:
                outcomes = retry_call(
                    self._store.upsert_nodes,
                    chunk,
                    max_attempts=self._max_attempts,
                    retry_on=StorageUnavailable,
                )
            except (ConstraintViolation, StorageUnavailable) as exc:
                result.batches_failed += 1
                log.warning(
                    "chunk_failed",
                    table=result.table,
                    batch=result.batches_total,
                    size=len(chunk),
                    error=str(exc),
                )
                self._commit_rows(chunk, result)
                continue
            for node, outcome in zip(chunk, outcomes):
                self._record(result, node, outcome)

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        log.debug(
            "level_chunks_committed",
            table=result.table,
            inserted=result.inserted,
            updated=result.updated,
            failed=result.records_failed,
            dry_run=self._dry_run,
        )
        return result

    def _commit_rows(self, chunk: Sequence[GeographyNode], result: LoadResult) -> None:
        for node in chunk:
            try:
                outcome = retry_call(
                    self._store.upsert_node,
                    node,
                    max_attempts=self._max_attempts,
                    retry_on=StorageUnavailable,
                )
            except ConstraintViolation as exc:
                result.records_failed += 1
                result.errors.append(f"{node.code}: {exc.message}")
                log.warning(
                    "row_rejected",
                    level=node.level.value,
                    code=node.code,
                    error=exc.message,
                )
                continue
            self._record(result, node, outcome)

    def _simulate(self, node: GeographyNode) -> UpsertOutcome:
        existing = self._store.find_node(node.level, node.code)
        if existing is None:
            return "inserted"
        return "unchanged" if existing.same_content(node) else "updated"

    @staticmethod
    def _record(result: LoadResult, node: GeographyNode, outcome: UpsertOutcome) -> None:
        if outcome == "inserted":
            result.inserted += 1
        elif outcome == "updated":
            result.updated += 1
        else:
            result.unchanged += 1
        if outcome != "unchanged":
            result.records_loaded += 1
        result.committed.append(node)
