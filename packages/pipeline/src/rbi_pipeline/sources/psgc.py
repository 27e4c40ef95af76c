"""
sources/psgc.py — PSGC (Philippine Standard Geographic Code) extract source.

One CSV per hierarchy level, read either from a local directory or from an
HTTP base URL:

  psgc_regions.csv                 code, name
  psgc_provinces.csv               code, name, region_code
  psgc_cities_municipalities.csv   code, name, province_code, region_code,
                                   is_independent, city_class
  psgc_barangays.csv               code, name, city_code, urban_rural_status

Column aliases (region_code/region_name, city_municipality_code, type, ...)
are resolved by transforms.normalize. Every cell is read as a string so
codes keep their leading zeros.

Usage:
    source = PSGCSource(GeoLevel.PROVINCE, extract_dir="./data/psgc")
    df = await source.run()

    source = PSGCSource(GeoLevel.BARANGAY, base_url="https://example.org/psgc")
    df = await source.run()
"""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any

import httpx
import polars as pl
import structlog

from rbi_shared.config import settings
from rbi_shared.constants import GeoLevel
from rbi_pipeline.sources.base import BaseSource
from rbi_pipeline.transforms.normalize import canonicalize
from rbi_pipeline.utils.retry import with_retry

log = structlog.get_logger(__name__)

EXTRACT_FILES: dict[GeoLevel, str] = {
    GeoLevel.REGION: "psgc_regions.csv",
    GeoLevel.PROVINCE: "psgc_provinces.csv",
    GeoLevel.CITY: "psgc_cities_municipalities.csv",
    GeoLevel.BARANGAY: "psgc_barangays.csv",
}


def read_extract_csv(content: bytes) -> pl.DataFrame:
    """Parse extract bytes with every column as a string."""
    if not content.strip():
        return pl.DataFrame()
    return pl.read_csv(
        io.BytesIO(content),
        infer_schema_length=0,
        encoding="utf8-lossy",
        truncate_ragged_lines=True,
    )


class PSGCSource(BaseSource):
    """Reads one level's PSGC extract."""

    name = "PSGC"

    def __init__(
        self,
        level: GeoLevel,
        *,
        extract_dir: str | Path | None = None,
        base_url: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        super().__init__()
        self.level = level
        self._base_url = (base_url if base_url is not None else settings.psgc_base_url).rstrip("/")
        self._extract_dir = Path(extract_dir or settings.psgc_extract_dir)
        self._timeout = timeout
        self._log = self._log.bind(level=level.value)

    @property
    def filename(self) -> str:
        return EXTRACT_FILES[self.level]

    @property
    def location(self) -> str:
        if self._base_url:
            return f"{self._base_url}/{self.filename}"
        return str(self._extract_dir / self.filename)

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, base_delay=1.0, retry_on=(httpx.TransportError,))
    async def _download(self, url: str) -> bytes | None:
        self._log.info("extract_download", url=url)
        async with httpx.AsyncClient(timeout=self._timeout, follow_redirects=True) as client:
            r = await client.get(url)
            if r.status_code == 404:
                return None
            r.raise_for_status()
            return r.content

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        """
        Read the raw extract. A missing file (or HTTP 404) yields an empty
        frame; reconciliation then has nothing to do at this level.
        """
        if self._base_url:
            content = await self._download(self.location)
        else:
            path = self._extract_dir / self.filename
            content = path.read_bytes() if path.is_file() else None

        if content is None:
            self._log.warning("extract_missing", location=self.location)
            return pl.DataFrame()
        return read_extract_csv(content)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return canonicalize(self._normalize_columns(raw), self.level)

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "level": self.level.value,
            "location": self.location,
            "description": f"PSGC {self.level.value} extract",
        }
