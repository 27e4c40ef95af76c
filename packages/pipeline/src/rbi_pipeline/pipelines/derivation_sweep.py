"""
pipelines/derivation_sweep.py — Periodic re-evaluation of age-dependent fields.

A resident who never changes can still cross an age threshold (turning 60,
aging out of the out-of-school bands). The sweep re-runs every
time-dependent rule at an explicit instant and writes only the residents
whose values changed.

Residents are visited in id order, one transaction per batch, so the sweep
never holds the database across its whole run. After every committed batch
the last id is checkpointed; an interrupted sweep for the same instant
resumes after it. An evaluation error is isolated to its resident and
reported.

Usage:
    from rbi_pipeline.pipelines.derivation_sweep import run
    report = await run(as_of=date(2026, 10, 18))
    print(report.changed, report.rule_changes)
"""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from rbi_shared.config import settings
from rbi_shared.db import Database, get_database
from rbi_shared.stores.registry import RegistryStore
from rbi_shared.time_utils import to_date, today
from rbi_pipeline.utils.checkpoint import clear_checkpoint, load_checkpoint, save_checkpoint
from rbi_pipeline.utils.logging import configure_logging, get_logger

log = get_logger(__name__, pipeline="derivation_sweep")

JOB_NAME = "derivation_sweep"


@dataclass
class SweepReport:
    as_of: date
    scanned: int = 0
    changed: int = 0
    batches: int = 0
    rule_changes: dict[str, int] = field(default_factory=dict)
    errors: list[dict[str, str]] = field(default_factory=list)
    resumed_from: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "as_of": self.as_of.isoformat(),
            "scanned": self.scanned,
            "changed": self.changed,
            "batches": self.batches,
            "rule_changes": dict(self.rule_changes),
            "errors": list(self.errors),
            "resumed_from": self.resumed_from,
            "duration_ms": self.duration_ms,
        }


def sweep(
    store: RegistryStore,
    as_of: date,
    *,
    batch_size: int | None = None,
    resume: bool = True,
) -> SweepReport:
    """Re-evaluate time-dependent rules for every resident at *as_of*."""
    t0 = time.monotonic()
    batch_size = batch_size or settings.sweep_batch_size
    report = SweepReport(as_of=as_of)
    engine = store.engine
    rule_changes: Counter[str] = Counter()

    after_id: str | None = None
    checkpoint = load_checkpoint(JOB_NAME) if resume else None
    if checkpoint and checkpoint.get("as_of") == as_of.isoformat():
        after_id = checkpoint.get("last_id")
        report.resumed_from = after_id
        log.info("sweep_resumed", as_of=as_of.isoformat(), after_id=after_id)
    log.info(
        "sweep_started",
        as_of=as_of.isoformat(),
        residents=store.count_residents(),
        batch_size=batch_size,
    )

    while True:
        # Rows are read under the batch transaction so an interleaved write
        # cannot be overwritten with values derived from its old inputs
        with store.transaction():
            rows = store.resident_batch(after_id, batch_size)
            for row in rows:
                report.scanned += 1
                try:
                    derived = engine.evaluate_time_dependent(row, as_of)
                except Exception as exc:
                    report.errors.append({"id": row["id"], "error": str(exc)})
                    log.warning("resident_evaluation_failed", id=row["id"], error=str(exc))
                    continue
                changed = engine.changed_fields(row, derived)
                if not changed:
                    continue
                store.save_derived(row["id"], derived)
                report.changed += 1
                rule_changes.update(changed)
        if not rows:
            break
        after_id = rows[-1]["id"]
        report.batches += 1
        save_checkpoint(JOB_NAME, {"as_of": as_of.isoformat(), "last_id": after_id})
        log.debug("sweep_batch_committed", batch=report.batches, last_id=after_id)

    clear_checkpoint(JOB_NAME)
    report.rule_changes = dict(rule_changes)
    report.duration_ms = int((time.monotonic() - t0) * 1000)
    log.info(
        "sweep_complete",
        as_of=as_of.isoformat(),
        scanned=report.scanned,
        changed=report.changed,
        errors=len(report.errors),
        duration_ms=report.duration_ms,
    )
    return report


async def run(
    as_of: date | datetime | str | None = None,
    *,
    db: Database | None = None,
    store: RegistryStore | None = None,
    batch_size: int | None = None,
    resume: bool = True,
) -> SweepReport:
    """
    Run the sweep at *as_of* (default: today, UTC).

    Raises:
        StorageUnavailable: the registry could not be reached or written.
    """
    configure_logging()
    instant = to_date(as_of) if as_of is not None else today()
    store = store or RegistryStore(db or get_database())
    return sweep(store, instant, batch_size=batch_size, resume=resume)
