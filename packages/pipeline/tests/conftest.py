"""
tests/conftest.py — Shared pytest fixtures for the pipeline test suite.

Provides:
  fixture_path()         — resolves paths to tests/fixtures/
  db / geo_store         — fresh in-memory DuckDB and a Geography Store over it
  psgc_extracts          — one small PSGC extract per level as String frames
  extract_dir            — the same extracts written as CSVs under tmp_path
  registry               — Registry Store over a committed copy of the extracts
  mock_supabase_client() — MagicMock of the Supabase client (prevents real calls)
  mock_http              — configured respx router for faking HTTP responses

Checkpoints are redirected to tmp_path for every test.
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from unittest.mock import MagicMock

import polars as pl
import pytest
import respx

from rbi_shared.config import settings
from rbi_shared.constants import GeoLevel
from rbi_shared.db import Database
from rbi_shared.derivation.engine import DerivationEngine
from rbi_shared.stores.geography import GeographyStore
from rbi_shared.stores.registry import RegistryStore

FIXTURES_DIR = Path(__file__).parent / "fixtures"

EXTRACT_FILES = {
    GeoLevel.REGION: "psgc_regions.csv",
    GeoLevel.PROVINCE: "psgc_provinces.csv",
    GeoLevel.CITY: "psgc_cities_municipalities.csv",
    GeoLevel.BARANGAY: "psgc_barangays.csv",
}


def _read(name: str) -> pl.DataFrame:
    return pl.read_csv(FIXTURES_DIR / name, infer_schema_length=0)


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


@pytest.fixture(autouse=True)
def _checkpoint_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    directory = tmp_path / "checkpoints"
    monkeypatch.setattr(settings, "checkpoint_dir", str(directory))
    return directory


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------

@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def geo_store(db: Database) -> GeographyStore:
    return GeographyStore(db)


# ---------------------------------------------------------------------------
# PSGC extracts
# ---------------------------------------------------------------------------

@pytest.fixture
def psgc_extracts() -> dict[GeoLevel, pl.DataFrame]:
    """
    Two regions; Ilocos Norte with two component LGUs; independent Marikina.

    Every cell is a string, exactly as the source reads it.
    """
    return {level: _read(name) for level, name in EXTRACT_FILES.items()}


@pytest.fixture
def extract_dir(tmp_path: Path, psgc_extracts: dict[GeoLevel, pl.DataFrame]) -> Path:
    directory = tmp_path / "psgc"
    directory.mkdir()
    for level, df in psgc_extracts.items():
        df.write_csv(directory / EXTRACT_FILES[level])
    return directory


@pytest.fixture
def registry(db: Database, geo_store: GeographyStore, psgc_extracts) -> RegistryStore:
    from rbi_pipeline.pipelines.reconciliation import ReconciliationEngine

    ReconciliationEngine(geo_store, workers=1).reconcile(psgc_extracts)
    engine = DerivationEngine(osy_policy="strict", senior_citizen_age=60)
    return RegistryStore(db, geo_store, engine, clock=lambda: date(2026, 10, 18))


# ---------------------------------------------------------------------------
# Supabase client mock
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_supabase_client() -> MagicMock:
    """
    A MagicMock that simulates the supabase.Client interface.

    The .table().upsert().execute() chain returns empty data by default.
    """
    client = MagicMock()
    default_result = MagicMock()
    default_result.data = []
    default_result.count = 0
    client.table.return_value.upsert.return_value.execute.return_value = default_result
    return client


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, text="..."))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router
