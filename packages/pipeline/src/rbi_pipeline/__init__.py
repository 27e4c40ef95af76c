"""
rbi_pipeline — batch jobs for the rbi platform.

Architecture:
  sources/     — PSGC extract readers (local CSV directory or HTTP)
  transforms/  — extract row normalization and hierarchy candidate building
  loaders/     — chunked, retried commits into DuckDB; Supabase publisher
  pipelines/   — reconciliation and derivation-sweep orchestrators
  utils/       — structlog configuration, retry helpers, sweep checkpoints

Quick start:
    from rbi_pipeline.pipelines.reconciliation import run as run_reconcile
    import asyncio
    report = asyncio.run(run_reconcile(dry_run=True))

CLI:
    rbi reconcile --dir ./data/psgc --dry-run
    rbi sweep --as-of 2026-10-18
    rbi audit
    rbi publish

Shared code from rbi_shared:
    from rbi_shared.config import settings
    from rbi_shared.db import Database, get_database, get_supabase_client
    from rbi_shared.stores.geography import GeographyStore
    from rbi_shared.stores.registry import RegistryStore
"""

__version__ = "0.1.0"
