"""
integrity_check.py — Integrity and drift monitor for the rbi store.

Audits the geography hierarchy (orphans, independence-rule violations,
placeholder counts) and re-evaluates the age-dependent classifications of
every active resident at today's date. Residents whose stored values differ
have crossed a threshold the sweep has not caught up with yet. Prints a
report table, writes a JSON report and exits non-zero when anything needs
attention.

Usage:
    python monitoring/integrity_check.py
    python monitoring/integrity_check.py --output /tmp/integrity.json
"""

from __future__ import annotations

import json
import sys
from collections import Counter
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

import click

# ---------------------------------------------------------------------------
# Bootstrap: make rbi_shared importable when running
# this script directly from the repo root.
# ---------------------------------------------------------------------------
_REPO_ROOT = Path(__file__).resolve().parent.parent
_SHARED_SRC = _REPO_ROOT / "shared" / "python" / "src"
if str(_SHARED_SRC) not in sys.path:
    sys.path.insert(0, str(_SHARED_SRC))

from rbi_shared.db import Database, get_database  # noqa: E402
from rbi_shared.stores.geography import GeographyStore  # noqa: E402
from rbi_shared.stores.registry import RegistryStore  # noqa: E402
from rbi_shared.time_utils import today  # noqa: E402

BATCH_SIZE = 1000

# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------


def derivation_drift(db: Database, as_of: date) -> dict[str, Any]:
    """Active residents whose stored time-dependent flags differ from *as_of*."""
    store = RegistryStore(db)
    engine = store.engine
    scanned = 0
    drifted: list[str] = []
    by_rule: Counter[str] = Counter()

    after_id: str | None = None
    while rows := store.resident_batch(after_id, BATCH_SIZE):
        for row in rows:
            if not row["is_active"]:
                continue
            scanned += 1
            changed = engine.changed_fields(row, engine.evaluate_time_dependent(row, as_of))
            if changed:
                drifted.append(row["id"])
                by_rule.update(changed)
        after_id = rows[-1]["id"]

    return {
        "as_of": as_of.isoformat(),
        "active_residents": scanned,
        "drifted_residents": len(drifted),
        "by_rule": dict(by_rule),
        "sample_ids": drifted[:10],
        "has_drift": bool(drifted),
    }


def generate_report(db: Database, as_of: date) -> dict[str, Any]:
    hierarchy = GeographyStore(db).audit()
    derivation = derivation_drift(db, as_of)
    return {
        "hierarchy": hierarchy,
        "derivation": derivation,
        "healthy": hierarchy["healthy"] and not derivation["has_drift"],
    }


# ---------------------------------------------------------------------------
# Report output
# ---------------------------------------------------------------------------


def print_report_table(report: dict[str, Any]) -> None:
    hierarchy = report["hierarchy"]
    header = f"{'Level':<20} {'Rows':>8} {'Placeholders':>13}"
    sep = "-" * len(header)
    print()
    print(header)
    print(sep)
    for level, count in hierarchy["counts"].items():
        print(f"{level:<20} {count:>8} {hierarchy['synthesized'][level]:>13}")
    print(sep)

    for key in ("orphaned_provinces", "orphaned_cities", "independence_violations", "orphaned_barangays"):
        codes = hierarchy[key]
        if codes:
            more = " ..." if len(codes) > 10 else ""
            print(f"{key}: {len(codes)} ({', '.join(codes[:10])}{more})")

    derivation = report["derivation"]
    print(
        f"derived classifications: {derivation['drifted_residents']} of "
        f"{derivation['active_residents']} active residents out of date "
        f"as of {derivation['as_of']}"
    )
    for rule, count in sorted(derivation["by_rule"].items()):
        print(f"  {rule:<28} {count:>6}")
    print()


def write_json_report(report: dict[str, Any], path: Path) -> None:
    payload = {"generated_at": datetime.now(timezone.utc).isoformat(), **report}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, default=str) + "\n")
    print(f"Report written to {path}")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


@click.command()
@click.option("--output", type=click.Path(dir_okay=False, path_type=Path),
              default=Path(__file__).resolve().parent / "integrity_report.json",
              help="Where to write the JSON report.")
def main(output: Path) -> None:
    """Audit the hierarchy and the currency of derived classifications."""
    print("=== rbi integrity check ===")
    report = generate_report(get_database(), today())
    print_report_table(report)
    write_json_report(report, output)

    if report["healthy"]:
        print("Hierarchy is closed and derived classifications are current.")
        return
    print("Integrity problems found; run `rbi reconcile` and/or `rbi sweep`.")
    sys.exit(1)


if __name__ == "__main__":
    main()
