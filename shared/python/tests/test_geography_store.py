"""
tests/test_geography_store.py — GeographyStore invariants, reads and audit.
"""

from __future__ import annotations

import pytest

from rbi_shared.constants import GeoLevel, Provenance
from rbi_shared.errors import ConstraintViolation, MalformedInput, NotFound
from rbi_shared.models.geography import Barangay, CityMunicipality, Province, Region
from rbi_shared.stores.geography import GeographyStore, MissingParent


class TestUpsertNode:
    def test_insert_then_unchanged_then_updated(self, geo_store: GeographyStore):
        assert geo_store.upsert_node(Region(code="13", name="NCR")) == "inserted"
        assert geo_store.upsert_node(Region(code="13", name="NCR")) == "unchanged"
        assert geo_store.upsert_node(Region(code="13", name="National Capital Region")) == "updated"
        assert geo_store.get_node(GeoLevel.REGION, "13").name == "National Capital Region"

    def test_province_requires_region(self, geo_store: GeographyStore):
        with pytest.raises(MissingParent) as exc_info:
            geo_store.upsert_node(Province(code="0128", name="Ilocos Norte", region_code="01"))
        assert exc_info.value.parent_level is GeoLevel.REGION
        assert exc_info.value.parent_code == "01"
        assert geo_store.count(GeoLevel.PROVINCE) == 0

    def test_missing_parent_is_a_constraint_violation(self, geo_store: GeographyStore):
        with pytest.raises(ConstraintViolation):
            geo_store.upsert_node(Barangay(code="0128010001", name="X", city_code="012801"))

    def test_independent_city_with_province_rejected(self, seeded_geo: GeographyStore):
        city = CityMunicipality(
            code="012802", name="Laoag", province_code="0128", region_code="01", is_independent=True
        )
        with pytest.raises(ConstraintViolation, match="must not belong to a province"):
            seeded_geo.upsert_node(city)

    def test_independent_city_needs_region(self, seeded_geo: GeographyStore):
        city = CityMunicipality(code="012802", name="Laoag", is_independent=True)
        with pytest.raises(ConstraintViolation, match="needs a direct region"):
            seeded_geo.upsert_node(city)

    def test_component_city_without_province_rejected(self, seeded_geo: GeographyStore):
        city = CityMunicipality(code="012802", name="Laoag", is_independent=False)
        with pytest.raises(ConstraintViolation, match="neither independent nor in a province"):
            seeded_geo.upsert_node(city)

    def test_component_city_with_direct_region_rejected(self, seeded_geo: GeographyStore):
        city = CityMunicipality(code="012802", name="Laoag", province_code="0128", region_code="01")
        with pytest.raises(ConstraintViolation, match="must not carry a direct region"):
            seeded_geo.upsert_node(city)

    def test_chunk_rolls_back_on_violation(self, geo_store: GeographyStore):
        with pytest.raises(MissingParent):
            geo_store.upsert_nodes(
                [
                    Region(code="01", name="Ilocos Region"),
                    Province(code="0300", name="Orphan", region_code="03"),
                ]
            )
        assert geo_store.count(GeoLevel.REGION) == 0

    def test_synthesized_node_replaced_by_extract(self, geo_store: GeographyStore):
        geo_store.upsert_node(Region(code="01", name="Region 01", provenance=Provenance.SYNTHESIZED))
        assert geo_store.upsert_node(Region(code="01", name="Ilocos Region")) == "updated"
        node = geo_store.get_node(GeoLevel.REGION, "01")
        assert node.provenance is Provenance.EXTRACT
        assert not node.is_synthesized


class TestResolveHierarchy:
    def test_barangay_in_province(self, seeded_geo: GeographyStore):
        view = seeded_geo.resolve_hierarchy("0128010001")
        assert view.region_code == "01"
        assert view.province_code == "0128"
        assert view.city_code == "012801"
        assert view.is_independent_city is False
        assert view.full_address == "Adams Poblacion, Adams, Ilocos Norte, Ilocos Region"

    def test_barangay_in_independent_city_has_no_province(self, seeded_geo: GeographyStore):
        view = seeded_geo.resolve_hierarchy("1375010001")
        assert view.province_code is None
        assert view.province_name is None
        assert view.region_code == "13"
        assert view.is_independent_city is True
        assert view.to_response_dict()["full_address"] == (
            "Barangka, City of Marikina, National Capital Region"
        )

    def test_unknown_barangay(self, seeded_geo: GeographyStore):
        with pytest.raises(NotFound):
            seeded_geo.resolve_hierarchy("9999999999")


class TestListChildren:
    def test_regions_are_roots(self, seeded_geo: GeographyStore):
        regions = seeded_geo.list_children(None, GeoLevel.REGION)
        assert [r.code for r in regions] == ["01", "13"]

    def test_cities_under_region_are_independent_cities(self, seeded_geo: GeographyStore):
        cities = seeded_geo.list_children("13", GeoLevel.CITY)
        assert [c.code for c in cities] == ["137501"]

    def test_cities_under_province(self, seeded_geo: GeographyStore):
        cities = seeded_geo.list_children("0128", GeoLevel.CITY)
        assert [c.code for c in cities] == ["012801"]

    def test_barangays_under_city(self, seeded_geo: GeographyStore):
        barangays = seeded_geo.list_children("012801", GeoLevel.BARANGAY)
        assert [b.code for b in barangays] == ["0128010001"]

    def test_parent_required_below_region(self, seeded_geo: GeographyStore):
        with pytest.raises(MalformedInput):
            seeded_geo.list_children(None, GeoLevel.PROVINCE)


class TestDeleteAndReferences:
    def test_referenced_node_cannot_be_deleted(self, seeded_geo: GeographyStore):
        with pytest.raises(ConstraintViolation):
            seeded_geo.delete_node(GeoLevel.PROVINCE, "0128")

    def test_unreferenced_leaf_deleted(self, seeded_geo: GeographyStore):
        seeded_geo.delete_node(GeoLevel.BARANGAY, "0128010001")
        assert seeded_geo.find_node(GeoLevel.BARANGAY, "0128010001") is None
        assert seeded_geo.reference_count(GeoLevel.CITY, "012801") == 0

    def test_region_counts_independent_cities(self, seeded_geo: GeographyStore):
        assert seeded_geo.reference_count(GeoLevel.REGION, "13") == 1

    def test_unreferenced_placeholders_children_first(self, geo_store: GeographyStore):
        geo_store.upsert_nodes(
            [
                Region(code="02", name="Region 02", provenance=Provenance.SYNTHESIZED),
                Province(code="0215", name="Province 0215", region_code="02",
                         provenance=Provenance.SYNTHESIZED),
            ]
        )
        assert geo_store.unreferenced_placeholders() == [(GeoLevel.PROVINCE, "0215")]


class TestAudit:
    def test_seeded_hierarchy_is_healthy(self, seeded_geo: GeographyStore):
        report = seeded_geo.audit()
        assert report["healthy"] is True
        assert report["counts"] == {
            "region": 2,
            "province": 1,
            "city_municipality": 2,
            "barangay": 2,
        }

    def test_rows_written_around_the_store_are_reported(self, seeded_geo: GeographyStore, db):
        db.execute(
            "INSERT INTO geo_barangays (code, name, city_code, provenance) VALUES (?, ?, ?, ?)",
            ["0199010001", "Stray", "019901", "extract"],
        )
        report = seeded_geo.audit()
        assert report["orphaned_barangays"] == ["0199010001"]
        assert report["healthy"] is False
