"""
db.py — DuckDB database handle and Supabase client singleton.

DuckDB is the system of record for the geography hierarchy and the registry.
One `Database` wraps one connection and a re-entrant lock: every write path
runs inside `transaction()`, which serializes writers at the transaction
boundary and rolls back on any exception.

Usage:
    from rbi_shared.db import Database, get_database, get_supabase_client

    db = get_database()                      # file-backed singleton (settings.duckdb_path)
    db = Database(":memory:")                # isolated handle (tests)
    with db.transaction():
        db.execute("UPDATE households SET ...", [...])
    supabase = get_supabase_client()         # service key (publish writes)
"""

from __future__ import annotations

import threading
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import duckdb
import structlog
from supabase import Client, create_client

from rbi_shared.config import settings
from rbi_shared.errors import ConstraintViolation, StorageUnavailable

logger = structlog.get_logger(__name__)

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS geo_regions (
        code VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        provenance VARCHAR NOT NULL DEFAULT 'extract',
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS geo_provinces (
        code VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        region_code VARCHAR NOT NULL,
        provenance VARCHAR NOT NULL DEFAULT 'extract',
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS geo_cities (
        code VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        province_code VARCHAR,
        region_code VARCHAR,
        is_independent BOOLEAN NOT NULL DEFAULT false,
        city_class VARCHAR NOT NULL DEFAULT 'Municipality',
        provenance VARCHAR NOT NULL DEFAULT 'extract',
        created_at TIMESTAMP,
        updated_at TIMESTAMP,
        CHECK (
            (is_independent AND province_code IS NULL AND region_code IS NOT NULL)
            OR (NOT is_independent AND province_code IS NOT NULL)
        )
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS geo_barangays (
        code VARCHAR PRIMARY KEY,
        name VARCHAR NOT NULL,
        city_code VARCHAR NOT NULL,
        urban_rural_status VARCHAR,
        provenance VARCHAR NOT NULL DEFAULT 'extract',
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS households (
        code VARCHAR PRIMARY KEY,
        barangay_code VARCHAR NOT NULL,
        house_number VARCHAR,
        street_name VARCHAR,
        subdivision VARCHAR,
        zip_code VARCHAR,
        head_resident_id VARCHAR,
        is_active BOOLEAN NOT NULL DEFAULT true,
        total_members INTEGER NOT NULL DEFAULT 0,
        total_migrants INTEGER NOT NULL DEFAULT 0,
        monthly_income DECIMAL(14, 2) NOT NULL DEFAULT 0,
        income_class VARCHAR,
        household_name VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS residents (
        id VARCHAR PRIMARY KEY,
        first_name VARCHAR NOT NULL,
        middle_name VARCHAR,
        last_name VARCHAR NOT NULL,
        extension_name VARCHAR,
        birth_date DATE NOT NULL,
        sex VARCHAR NOT NULL,
        civil_status VARCHAR,
        household_code VARCHAR,
        barangay_code VARCHAR NOT NULL,
        education_status VARCHAR,
        education_level VARCHAR,
        employment_status VARCHAR,
        salary DECIMAL(12, 2),
        has_disability BOOLEAN NOT NULL DEFAULT false,
        is_migrant BOOLEAN NOT NULL DEFAULT false,
        is_active BOOLEAN NOT NULL DEFAULT true,
        is_senior_citizen BOOLEAN NOT NULL DEFAULT false,
        is_employed BOOLEAN NOT NULL DEFAULT false,
        is_unemployed BOOLEAN NOT NULL DEFAULT false,
        is_in_labor_force BOOLEAN NOT NULL DEFAULT false,
        is_out_of_school_child BOOLEAN NOT NULL DEFAULT false,
        is_out_of_school_youth BOOLEAN NOT NULL DEFAULT false,
        is_person_with_disability BOOLEAN NOT NULL DEFAULT false,
        derived_as_of DATE,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
)


def db_now() -> datetime:
    """Naive UTC timestamp for TIMESTAMP columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Database:
    """
    One DuckDB connection shared by the stores.

    DuckDB connections are not safe for concurrent use, so every statement
    runs under the handle's lock; `transaction()` holds the lock for the
    whole unit of work. Nested `transaction()` blocks join the outer one.
    """

    def __init__(self, path: str = ":memory:", *, create_schema: bool = True) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._depth = 0
        try:
            self._conn = duckdb.connect(path)
        except (duckdb.IOException, duckdb.ConnectionException) as exc:
            raise StorageUnavailable(f"Cannot open DuckDB at {path!r}: {exc}", path=path) from exc
        if create_schema:
            self.ensure_schema()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def ensure_schema(self) -> None:
        with self.transaction():
            for statement in SCHEMA_STATEMENTS:
                self.execute(statement)
        logger.debug("schema_ready", path=self.path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """
        BEGIN/COMMIT around the block; ROLLBACK and re-raise on any error.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._run(lambda: self._conn.begin())
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._conn.rollback()
                raise
            else:
                self._depth -= 1
                if outermost:
                    try:
                        self._run(lambda: self._conn.commit())
                    except Exception:
                        self._discard_failed_commit()
                        raise

    def _discard_failed_commit(self) -> None:
        try:
            self._conn.rollback()
        except duckdb.Error as exc:
            # The failed COMMIT already ended the transaction
            logger.debug("rollback_after_failed_commit", error=str(exc))

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def execute(self, sql: str, params: Sequence[Any] | None = None) -> None:
        with self._lock:
            self._run(lambda: self._conn.execute(sql, params or []))

    def fetch_all(self, sql: str, params: Sequence[Any] | None = None) -> list[dict[str, Any]]:
        with self._lock:
            def _query() -> list[dict[str, Any]]:
                cur = self._conn.execute(sql, params or [])
                columns = [d[0] for d in cur.description]
                return [dict(zip(columns, row)) for row in cur.fetchall()]

            return self._run(_query)

    def fetch_one(self, sql: str, params: Sequence[Any] | None = None) -> dict[str, Any] | None:
        rows = self.fetch_all(sql, params)
        return rows[0] if rows else None

    def fetch_value(self, sql: str, params: Sequence[Any] | None = None) -> Any:
        with self._lock:
            row = self._run(lambda: self._conn.execute(sql, params or []).fetchone())
        return row[0] if row else None

    @staticmethod
    def _run(fn: Any) -> Any:
        try:
            return fn()
        except duckdb.ConstraintException as exc:
            raise ConstraintViolation(str(exc)) from exc
        except (duckdb.IOException, duckdb.ConnectionException) as exc:
            raise StorageUnavailable(str(exc)) from exc


# ---------------------------------------------------------------------------
# DuckDB: single file-backed handle per process
# ---------------------------------------------------------------------------
_database_lock = threading.Lock()
_database: Optional[Database] = None


def get_database() -> Database:
    """
    Return a singleton Database at settings.duckdb_path.

    Creates parent directories and the schema if they don't exist.
    """
    global _database

    with _database_lock:
        if _database is None:
            db_path = settings.duckdb_path
            if db_path != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            _database = Database(db_path)
            logger.info("duckdb_connected", path=db_path)
        return _database


def reset_database() -> None:
    """Close and drop the singleton (useful in tests)."""
    global _database
    with _database_lock:
        if _database is not None:
            _database.close()
            _database = None


# ---------------------------------------------------------------------------
# Supabase: one service-role client per process
# ---------------------------------------------------------------------------
_supabase_lock = threading.Lock()
_supabase_service: Optional[Client] = None


def get_supabase_client() -> Client:
    """
    Return a singleton Supabase client using the service role key.

    Only the publish step writes to Supabase; RLS is bypassed for it.
    """
    global _supabase_service

    with _supabase_lock:
        if _supabase_service is None:
            if not settings.supabase_service_key:
                raise RuntimeError(
                    "SUPABASE_SERVICE_KEY is not set. "
                    "Set it in .env before publishing."
                )
            _supabase_service = create_client(
                settings.supabase_url,
                settings.supabase_service_key,
            )
            logger.info("supabase_client_created", role="service_role")
        return _supabase_service


def reset_supabase_client() -> None:
    """Reset the singleton client (useful in tests)."""
    global _supabase_service
    with _supabase_lock:
        _supabase_service = None
