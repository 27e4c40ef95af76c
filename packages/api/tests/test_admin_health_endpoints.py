"""Tests for health probes and batch job triggers."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from rbi_shared.config import settings
from rbi_shared.errors import StorageUnavailable

from rbi_api.utils.cache import geography_cache


@pytest.fixture(autouse=True)
def _checkpoint_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "checkpoint_dir", str(tmp_path / "checkpoints"))


@pytest.fixture()
def extract_dir(tmp_path):
    """A small PSGC extract adding Cagayan Valley and renaming Barangka."""
    directory = tmp_path / "psgc"
    directory.mkdir()
    (directory / "psgc_regions.csv").write_text(
        "code,name\n"
        "0100000000,Ilocos Region\n"
        "0200000000,Cagayan Valley\n"
        "1300000000,National Capital Region\n"
    )
    (directory / "psgc_provinces.csv").write_text(
        "code,name,region_code\n0128000000,Ilocos Norte,0100000000\n"
    )
    (directory / "psgc_cities_municipalities.csv").write_text(
        "code,name,province_code,region_code,is_independent,city_class\n"
        "0128010000,Adams,0128000000,,false,Municipality\n"
        "1375010000,City of Marikina,,1300000000,true,Highly Urbanized City\n"
    )
    (directory / "psgc_barangays.csv").write_text(
        "code,name,city_code,urban_rural_status\n"
        "0128010001,Adams Poblacion,0128010000,\n"
        "1375010001,Barangka Proper,1375010000,urban\n"
    )
    return directory


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ready(client):
    assert client.get("/ready").json() == {"status": "ready"}


def test_ready_storage_unavailable(app, client):
    from rbi_api.dependencies import get_db

    broken = MagicMock()
    broken.fetch_value.side_effect = StorageUnavailable("database is locked")
    app.dependency_overrides[get_db] = lambda: broken

    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json()["error"] == "database is locked"


def test_reconciliation_dry_run(client, extract_dir):
    response = client.post(
        "/v1/admin/reconciliation", params={"extract_dir": str(extract_dir), "dry_run": "true"}
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["dry_run"] is True
    assert data["levels"]["region"]["inserted"] == 1
    assert client.get("/v1/geo/address/1375010001").json()["data"]["barangay_name"] == "Barangka"


def test_reconciliation_commits_and_clears_cache(client, extract_dir):
    client.get("/v1/geo/address/1375010001")
    assert len(geography_cache) == 1

    response = client.post("/v1/admin/reconciliation", params={"extract_dir": str(extract_dir)})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["levels"]["barangay"]["updated"] == 1
    assert data["addressable_pct"] == 100.0
    assert len(geography_cache) == 0
    assert client.get("/v1/geo/address/1375010001").json()["data"]["barangay_name"] == "Barangka Proper"


def test_sweep_at_explicit_date(client):
    household = {"code": "HH-7", "barangay_code": "1375010001"}
    assert client.post("/v1/households", json=household).status_code == 201
    client.post(
        "/v1/residents",
        json={
            "first_name": "Ernesto",
            "last_name": "Reyes",
            "birth_date": "1930-01-01",
            "sex": "male",
            "household_code": "HH-7",
        },
    )

    response = client.post("/v1/admin/sweep", params={"as_of": "2026-10-18"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["as_of"] == "2026-10-18"
    assert data["scanned"] == 1
    assert data["changed"] == 0


def test_sweep_bad_date(client):
    response = client.post("/v1/admin/sweep", params={"as_of": "not-a-date"})
    assert response.status_code == 422


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_request_id_is_generated(client):
    assert len(client.get("/health").headers["X-Request-ID"]) == 32
