"""
tests/test_loaders/test_geography_loader.py — Chunked commits, row fallback
and retries in GeographyLoader.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from rbi_shared.constants import GeoLevel
from rbi_shared.errors import StorageUnavailable
from rbi_shared.models.geography import Province, Region
from rbi_shared.stores.geography import GeographyStore
from rbi_pipeline.loaders.geography_loader import GeographyLoader


def _regions(*codes: str) -> list[Region]:
    return [Region(code=c, name=f"Region {c}") for c in codes]


class TestCommit:
    def test_inserts_in_chunks(self, geo_store: GeographyStore):
        loader = GeographyLoader(geo_store, batch_size=2)
        result = loader.commit(GeoLevel.REGION, _regions("0100000000", "0200000000", "0300000000"))

        assert result.table == "geo_regions"
        assert result.batches_total == 2
        assert result.inserted == 3
        assert result.records_loaded == 3
        assert geo_store.count(GeoLevel.REGION) == 3

    def test_unchanged_rows_are_committed_but_not_loaded(self, geo_store: GeographyStore):
        loader = GeographyLoader(geo_store)
        loader.commit(GeoLevel.REGION, _regions("0100000000"))
        result = loader.commit(GeoLevel.REGION, _regions("0100000000"))
        assert result.unchanged == 1
        assert result.records_loaded == 0
        assert [n.code for n in result.committed] == ["0100000000"]

    def test_empty_input(self, geo_store: GeographyStore):
        result = GeographyLoader(geo_store).commit(GeoLevel.PROVINCE, [])
        assert result.batches_total == 0
        assert result.success

    def test_bad_row_does_not_sink_its_chunk(self, geo_store: GeographyStore):
        geo_store.upsert_node(Region(code="0100000000", name="Ilocos"))
        nodes = [
            Province(code="0128000000", name="Ilocos Norte", region_code="0100000000"),
            Province(code="0999000000", name="Nowhere", region_code="0900000000"),
            Province(code="0129000000", name="Ilocos Sur", region_code="0100000000"),
        ]
        result = GeographyLoader(geo_store, batch_size=10).commit(GeoLevel.PROVINCE, nodes)

        assert result.batches_failed == 1
        assert result.inserted == 2
        assert result.records_failed == 1
        assert result.errors[0].startswith("0999000000:")
        assert result.status == "partial_failure"
        assert geo_store.find_node(GeoLevel.PROVINCE, "0999000000") is None


class TestRetries:
    def test_transient_storage_error_is_retried(self):
        store = MagicMock(spec=GeographyStore)
        store.upsert_nodes.side_effect = [StorageUnavailable("disk busy"), ["inserted"]]

        result = GeographyLoader(store, max_attempts=3).commit(
            GeoLevel.REGION, _regions("0100000000")
        )

        assert store.upsert_nodes.call_count == 2
        assert result.inserted == 1
        assert result.batches_failed == 0

    def test_row_level_storage_error_is_fatal(self):
        store = MagicMock(spec=GeographyStore)
        store.upsert_nodes.side_effect = StorageUnavailable("gone")
        store.upsert_node.side_effect = StorageUnavailable("gone")

        with pytest.raises(StorageUnavailable):
            GeographyLoader(store, max_attempts=1).commit(GeoLevel.REGION, _regions("0100000000"))


class TestDryRun:
    def test_nothing_is_written(self, geo_store: GeographyStore):
        geo_store.upsert_node(Region(code="0100000000", name="Ilocos"))
        loader = GeographyLoader(geo_store, dry_run=True)

        result = loader.commit(
            GeoLevel.REGION,
            [Region(code="0100000000", name="Ilocos Region"), Region(code="0200000000", name="Cagayan Valley")],
        )

        assert result.updated == 1
        assert result.inserted == 1
        assert geo_store.get_node(GeoLevel.REGION, "0100000000").name == "Ilocos"
        assert geo_store.find_node(GeoLevel.REGION, "0200000000") is None
