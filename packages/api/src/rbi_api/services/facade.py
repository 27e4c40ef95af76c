"""
services/facade.py — The Query/Access Facade.

The one boundary the presentation and reporting layers read through. It
composes the Geography Store, the Registry Store and the two batch jobs and
exposes:

  resolve_address(barangay_code)        -> HierarchyView
  list_children(parent_code, level)     -> list[GeographyNode]
  get_resident(id) / get_household(code)
  run_reconciliation(...)               -> ReconciliationReport
  run_derivation_sweep(as_of)           -> SweepReport

plus the registry write operations. Geography lookups are cached; the cache
is cleared when a reconciliation run through the facade commits. Runs from
the CLI show up once entries age out (GEOGRAPHY_CACHE_TTL, default 300s).

Usage:
    facade = RegistryFacade(get_database())
    view = facade.resolve_address("1375010001")
    report = await facade.run_reconciliation(extract_dir="./data/psgc")
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import date, datetime
from pathlib import Path
from typing import Any

import polars as pl
import structlog

from rbi_shared.constants import GeoLevel
from rbi_shared.db import Database
from rbi_shared.derivation.engine import DerivationEngine
from rbi_shared.models.geography import GeographyNode, HierarchyView
from rbi_shared.models.registry import Household, Resident
from rbi_shared.stores.geography import GeographyStore
from rbi_shared.stores.registry import RegistryStore
from rbi_shared.time_utils import today
from rbi_pipeline.pipelines import derivation_sweep, reconciliation

from rbi_api.utils.cache import TTLCache, geography_cache

log = structlog.get_logger(__name__)


class RegistryFacade:
    def __init__(
        self,
        db: Database,
        *,
        engine: DerivationEngine | None = None,
        clock: Callable[[], date] = today,
        cache: TTLCache = geography_cache,
    ) -> None:
        self.db = db
        self.geography = GeographyStore(db)
        self.registry = RegistryStore(db, self.geography, engine, clock)
        self._cache = cache

    # ------------------------------------------------------------------
    # Geography reads
    # ------------------------------------------------------------------

    def resolve_address(self, barangay_code: str) -> HierarchyView:
        return self._cache.get_or_load(
            f"address:{barangay_code}",
            lambda: self.geography.resolve_hierarchy(barangay_code),
        )

    def list_children(self, parent_code: str | None, level: GeoLevel) -> list[GeographyNode]:
        return self._cache.get_or_load(
            f"children:{level.value}:{parent_code or ''}",
            lambda: self.geography.list_children(parent_code, level),
        )

    # ------------------------------------------------------------------
    # Registry reads
    # ------------------------------------------------------------------

    def get_resident(self, resident_id: str) -> Resident:
        return self.registry.get_resident(resident_id)

    def get_household(self, code: str) -> Household:
        return self.registry.get_household(code)

    def list_household_members(self, code: str) -> list[Resident]:
        return self.registry.list_household_members(code)

    # ------------------------------------------------------------------
    # Registry writes
    # ------------------------------------------------------------------

    def create_household(self, payload: Mapping[str, Any]) -> Household:
        return self.registry.create_household(payload)

    def update_household_address(self, code: str, fields: Mapping[str, Any]) -> Household:
        return self.registry.update_household_address(code, **fields)

    def set_household_head(self, code: str, resident_id: str) -> Household:
        return self.registry.set_household_head(code, resident_id)

    def create_resident(self, payload: Mapping[str, Any]) -> Resident:
        return self.registry.create_resident(payload)

    def update_resident(self, resident_id: str, payload: Mapping[str, Any]) -> Resident:
        return self.registry.update_resident(resident_id, payload)

    def move_resident(self, resident_id: str, household_code: str | None) -> Resident:
        return self.registry.move_resident(resident_id, household_code)

    def deactivate_resident(self, resident_id: str) -> Resident:
        return self.registry.deactivate_resident(resident_id)

    # ------------------------------------------------------------------
    # Batch jobs
    # ------------------------------------------------------------------

    async def run_reconciliation(
        self,
        extracts: Mapping[GeoLevel, pl.DataFrame] | None = None,
        *,
        extract_dir: str | Path | None = None,
        dry_run: bool = False,
    ) -> reconciliation.ReconciliationReport:
        report = await reconciliation.run(
            extract_dir, extracts=extracts, db=self.db, dry_run=dry_run
        )
        if not dry_run:
            self._cache.clear()
            log.info("geography_cache_cleared", run_id=report.run_id)
        return report

    async def run_derivation_sweep(
        self, as_of: date | datetime | str | None = None
    ) -> derivation_sweep.SweepReport:
        return await derivation_sweep.run(as_of, store=self.registry)
