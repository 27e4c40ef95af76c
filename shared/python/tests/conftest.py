"""
tests/conftest.py — Shared pytest fixtures for the rbi_shared test suite.

Provides:
  db           — fresh in-memory DuckDB Database with the schema applied
  geo_store    — GeographyStore over `db`
  seeded_geo   — geo_store holding two small regions:
                   NCR (13) -> independent City of Marikina (137501) -> Barangka
                   Ilocos (01) -> Ilocos Norte (0128) -> Adams (012801) -> Poblacion
  registry     — RegistryStore over the seeded hierarchy, clock fixed at AS_OF
"""

from __future__ import annotations

from datetime import date

import pytest

from rbi_shared.db import Database
from rbi_shared.derivation.engine import DerivationEngine
from rbi_shared.models.geography import Barangay, CityMunicipality, Province, Region
from rbi_shared.stores.geography import GeographyStore
from rbi_shared.stores.registry import RegistryStore

AS_OF = date(2026, 10, 18)

NCR_BARANGAY = "1375010001"
ILOCOS_BARANGAY = "0128010001"


@pytest.fixture
def as_of() -> date:
    return AS_OF


@pytest.fixture
def db():
    database = Database(":memory:")
    yield database
    database.close()


@pytest.fixture
def geo_store(db: Database) -> GeographyStore:
    return GeographyStore(db)


@pytest.fixture
def seeded_geo(geo_store: GeographyStore) -> GeographyStore:
    geo_store.upsert_nodes(
        [
            Region(code="13", name="National Capital Region"),
            CityMunicipality(
                code="137501",
                name="City of Marikina",
                region_code="13",
                is_independent=True,
                city_class="City",
            ),
            Barangay(code=NCR_BARANGAY, name="Barangka", city_code="137501", urban_rural_status="urban"),
            Region(code="01", name="Ilocos Region"),
            Province(code="0128", name="Ilocos Norte", region_code="01"),
            CityMunicipality(code="012801", name="Adams", province_code="0128"),
            Barangay(code=ILOCOS_BARANGAY, name="Adams Poblacion", city_code="012801"),
        ]
    )
    return geo_store


@pytest.fixture
def engine() -> DerivationEngine:
    return DerivationEngine(osy_policy="strict", senior_citizen_age=60)


@pytest.fixture
def registry(db: Database, seeded_geo: GeographyStore, engine: DerivationEngine) -> RegistryStore:
    return RegistryStore(db, seeded_geo, engine, clock=lambda: AS_OF)


@pytest.fixture
def resident_payload():
    """Factory for a valid ResidentCreate payload; keyword overrides win."""

    def _make(**overrides):
        payload = {
            "first_name": "Juan",
            "last_name": "Dela Cruz",
            "birth_date": date(1990, 5, 1),
            "sex": "male",
            "civil_status": "married",
            "employment_status": "employed",
            "salary": "25000.00",
        }
        payload.update(overrides)
        return payload

    return _make
