"""
sources/base.py — Abstract base class for extract sources.

A source turns one published extract into a canonical polars frame:

  extract()      — read the raw extract, every column as a string
  transform()    — rename aliased headers, trim cells, normalize codes
  get_metadata() — where the extract came from, for run reports

Pipelines call run(), which chains the two steps and logs row counts and
timings under the source's name.
"""

from __future__ import annotations

import re
import time
from abc import ABC, abstractmethod
from typing import Any

import polars as pl
import structlog

log = structlog.get_logger(__name__)

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z\d])([A-Z])")
_SEPARATORS = re.compile(r"[\s\-/]+")


def _elapsed_ms(t0: float) -> int:
    return int((time.monotonic() - t0) * 1000)


class BaseSource(ABC):
    """Abstract base for rbi extract sources."""

    # Override in subclass
    name: str = "unknown"

    def __init__(self) -> None:
        self._log = log.bind(source_name=self.name)

    @abstractmethod
    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        """Read the raw extract. A missing extract is an empty frame, not an error."""
        ...

    @abstractmethod
    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        ...

    @abstractmethod
    async def get_metadata(self) -> dict[str, Any]:
        ...

    async def run(self, **kwargs: Any) -> pl.DataFrame:
        """
        Extract then transform.

        Raises:
            Whatever extract() or transform() raised, after logging it.
        """
        t0 = time.monotonic()
        try:
            raw = await self.extract(**kwargs)
            self._log.info(
                "extract_read", raw_rows=raw.height, raw_cols=raw.width, duration_ms=_elapsed_ms(t0)
            )
            frame = self.transform(raw)
        except Exception as exc:
            self._log.error("source_run_failed", error=str(exc), duration_ms=_elapsed_ms(t0), exc_info=True)
            raise
        self._log.info("source_run_complete", rows=frame.height, duration_ms=_elapsed_ms(t0))
        return frame

    @staticmethod
    def _to_snake_case(header: str) -> str:
        """'RegionCode', 'Region Code' and 'Region-Code' all become 'region_code'."""
        s = _ACRONYM_BOUNDARY.sub(r"\1_\2", header.strip())
        s = _CAMEL_BOUNDARY.sub(r"\1_\2", s)
        return _SEPARATORS.sub("_", s).lower()

    @classmethod
    def _normalize_columns(cls, df: pl.DataFrame) -> pl.DataFrame:
        return df.rename({col: cls._to_snake_case(col) for col in df.columns})
