"""
loaders/supabase_loader.py — Mirrors the committed geography tables to Supabase.

DuckDB is the system of record. After a reconciliation run commits, the
four geo_* tables can be published to Supabase so the presentation layer
reads the same hierarchy. Publishing is a replay, never a merge:

  - tables go parents first (regions, provinces, cities, barangays) so a
    replica with foreign keys accepts every batch
  - rows are upserted on ``code`` in batches of BATCH_SIZE
  - a failed batch is recorded and the next one is attempted; the publish
    as a whole reports partial failure instead of raising

Also home of LoadResult, the per-table counter shared with the
GeographyLoader.

Usage:
    from rbi_pipeline.loaders.supabase_loader import SupabaseLoader

    loader = SupabaseLoader()
    results = await loader.publish_geography(db)
    for r in results:
        print(r.table, r.records_loaded, r.records_failed)
"""

from __future__ import annotations

import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from typing import Any

import polars as pl
import structlog
from supabase import Client

from rbi_shared.constants import GEO_TABLES, LEVEL_ORDER, GeoLevel
from rbi_shared.db import Database, get_supabase_client

log = structlog.get_logger(__name__)

BATCH_SIZE = 500     # rows per Supabase request

CONFLICT_KEY = "code"


@dataclass
class LoadResult:
    """Counters for one table written by a loader."""

    table: str
    records_loaded: int = 0
    records_failed: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    # Nodes now present in the store (written or already identical)
    committed: list[Any] = field(default_factory=list, repr=False)

    @property
    def success(self) -> bool:
        return self.records_failed == 0

    @property
    def status(self) -> str:
        if self.records_failed == 0:
            return "success"
        if self.records_loaded > 0:
            return "partial_failure"
        return "failure"

    def to_dict(self) -> dict[str, Any]:
        return {
            "table": self.table,
            "records_loaded": self.records_loaded,
            "records_failed": self.records_failed,
            "batches_total": self.batches_total,
            "batches_failed": self.batches_failed,
            "errors": self.errors,
            "duration_ms": self.duration_ms,
            "status": self.status,
        }


def _batches(rows: Sequence[dict[str, Any]], size: int) -> Iterator[Sequence[dict[str, Any]]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class SupabaseLoader:
    """
    Publishes geography to Supabase with the service-role client, which
    bypasses RLS on the replica tables.
    """

    def __init__(self, batch_size: int = BATCH_SIZE, client: Client | None = None) -> None:
        self._batch_size = batch_size
        self._client = client or get_supabase_client()

    async def publish_geography(
        self,
        db: Database,
        levels: Sequence[GeoLevel] = LEVEL_ORDER,
    ) -> list[LoadResult]:
        """Publish each level's table, parents first."""
        results = []
        for level in levels:
            table = GEO_TABLES[level]
            rows = db.fetch_all(f"SELECT * FROM {table} ORDER BY code")
            df = pl.DataFrame(rows) if rows else pl.DataFrame()
            results.append(await self.publish_table(table, df))
        log.info(
            "geography_published",
            tables=len(results),
            records_loaded=sum(r.records_loaded for r in results),
            records_failed=sum(r.records_failed for r in results),
        )
        return results

    async def publish_table(
        self,
        table: str,
        df: pl.DataFrame,
        *,
        exclude: Sequence[str] = (),
    ) -> LoadResult:
        """
        Upsert every row of *df* into *table* on the ``code`` key.

        A failing batch is counted against records_failed and publishing
        carries on with the next batch.
        """
        result = LoadResult(table=table)
        if df.is_empty():
            log.warning("publish_table_empty", table=table)
            return result

        t0 = time.monotonic()
        table_log = log.bind(table=table, rows=df.height)
        rows = self.serialize(df, exclude=exclude)

        for number, batch in enumerate(_batches(rows, self._batch_size), start=1):
            result.batches_total += 1
            try:
                self._client.table(table).upsert(list(batch), on_conflict=CONFLICT_KEY).execute()
            except Exception as exc:
                result.records_failed += len(batch)
                result.batches_failed += 1
                result.errors.append(f"batch {number}: {exc}")
                table_log.error("publish_batch_failed", batch=number, error=str(exc))
                continue
            result.records_loaded += len(batch)

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        table_log.info(
            "publish_table_complete",
            records_loaded=result.records_loaded,
            records_failed=result.records_failed,
            status=result.status,
            duration_ms=result.duration_ms,
        )
        return result

    @staticmethod
    def serialize(df: pl.DataFrame, *, exclude: Sequence[str] = ()) -> list[dict[str, Any]]:
        """
        JSON-ready rows: dates and timestamps become ISO strings and null
        cells are dropped so the replica's column defaults apply.
        """
        df = df.drop([c for c in exclude if c in df.columns])
        temporal = []
        for name, dtype in df.schema.items():
            if dtype == pl.Date:
                temporal.append(pl.col(name).dt.strftime("%Y-%m-%d"))
            elif dtype == pl.Datetime:
                temporal.append(pl.col(name).dt.strftime("%Y-%m-%dT%H:%M:%SZ"))
        if temporal:
            df = df.with_columns(temporal)
        return [{k: v for k, v in row.items() if v is not None} for row in df.iter_rows(named=True)]
