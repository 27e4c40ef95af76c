"""Shared test fixtures for rbi-api."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from rbi_shared.db import Database
from rbi_shared.models.geography import Barangay, CityMunicipality, Province, Region
from rbi_shared.stores.geography import GeographyStore


@pytest.fixture(autouse=True)
def _clear_caches():
    """Clear the in-memory geography cache between tests."""
    from rbi_api.utils.cache import geography_cache

    yield
    geography_cache.clear()


@pytest.fixture()
def db():
    """In-memory DuckDB holding NCR -> Marikina -> Barangka and Ilocos -> Ilocos Norte -> Adams."""
    database = Database(":memory:")
    GeographyStore(database).upsert_nodes(
        [
            Region(code="1300000000", name="National Capital Region"),
            CityMunicipality(
                code="1375010000",
                name="City of Marikina",
                region_code="1300000000",
                is_independent=True,
                city_class="Highly Urbanized City",
            ),
            Barangay(code="1375010001", name="Barangka", city_code="1375010000", urban_rural_status="urban"),
            Region(code="0100000000", name="Ilocos Region"),
            Province(code="0128000000", name="Ilocos Norte", region_code="0100000000"),
            CityMunicipality(code="0128010000", name="Adams", province_code="0128000000"),
            Barangay(code="0128010001", name="Adams Poblacion", city_code="0128010000"),
        ]
    )
    yield database
    database.close()


@pytest.fixture()
def app(db):
    """Test FastAPI app reading and writing the in-memory database."""
    from rbi_api.app import create_app
    from rbi_api.dependencies import get_db

    application = create_app()
    application.dependency_overrides[get_db] = lambda: db
    return application


@pytest.fixture()
def client(app):
    """HTTP test client."""
    return TestClient(app)


@pytest.fixture()
def resident_body():
    def _make(**overrides):
        body = {
            "first_name": "Maria",
            "last_name": "Santos",
            "birth_date": "1990-05-01",
            "sex": "female",
            "civil_status": "married",
            "employment_status": "employed",
            "salary": "25000.00",
        }
        body.update(overrides)
        return body

    return _make
