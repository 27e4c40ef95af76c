"""
transforms/normalize.py — Canonical columns for PSGC extract frames.

Published extracts disagree on column names ("code" vs "region_code",
"city_municipality_code" vs "city_code", "type" vs "city_class") and on cell
formatting (padding whitespace, blank strings, float-rendered codes). This
module maps any of those onto one canonical String frame per level and splits
off rows that lack a required column.

Usage:
    from rbi_pipeline.transforms.normalize import canonicalize, split_malformed

    df = canonicalize(raw, GeoLevel.CITY)
    valid, malformed = split_malformed(df, GeoLevel.CITY)
    valid, duplicates = dedupe_last(valid)
"""

from __future__ import annotations

import polars as pl
import structlog

from rbi_shared.constants import GeoLevel
from rbi_shared.geo import normalize_code

log = structlog.get_logger(__name__)

LEVEL_COLUMNS: dict[GeoLevel, tuple[str, ...]] = {
    GeoLevel.REGION: ("code", "name"),
    GeoLevel.PROVINCE: ("code", "name", "region_code"),
    GeoLevel.CITY: (
        "code",
        "name",
        "province_code",
        "region_code",
        "is_independent",
        "city_class",
    ),
    GeoLevel.BARANGAY: ("code", "name", "city_code", "urban_rural_status"),
}

# A blank non-independent city province is derived from its code, so only
# code and name are required there.
REQUIRED_COLUMNS: dict[GeoLevel, tuple[str, ...]] = {
    GeoLevel.REGION: ("code", "name"),
    GeoLevel.PROVINCE: ("code", "name", "region_code"),
    GeoLevel.CITY: ("code", "name"),
    GeoLevel.BARANGAY: ("code", "name", "city_code"),
}

# alias -> canonical; the first alias present wins, an existing canonical column always wins
COLUMN_ALIASES: dict[GeoLevel, tuple[tuple[str, str], ...]] = {
    GeoLevel.REGION: (
        ("region_code", "code"),
        ("region_name", "name"),
    ),
    GeoLevel.PROVINCE: (
        ("province_code", "code"),
        ("province_name", "name"),
    ),
    GeoLevel.CITY: (
        ("city_municipality_code", "code"),
        ("city_code", "code"),
        ("city_municipality_name", "name"),
        ("city_name", "name"),
        ("type", "city_class"),
        ("independent", "is_independent"),
    ),
    GeoLevel.BARANGAY: (
        ("barangay_code", "code"),
        ("barangay_name", "name"),
        ("city_municipality_code", "city_code"),
        ("urban_rural", "urban_rural_status"),
    ),
}

CODE_COLUMNS = frozenset({"code", "region_code", "province_code", "city_code"})


def _resolve_aliases(df: pl.DataFrame, level: GeoLevel) -> pl.DataFrame:
    present = set(df.columns)
    renames: dict[str, str] = {}
    for alias, canonical in COLUMN_ALIASES[level]:
        if alias not in present or alias in renames:
            continue
        if canonical in present or canonical in renames.values():
            continue
        renames[alias] = canonical
    return df.rename(renames) if renames else df


def canonicalize(df: pl.DataFrame, level: GeoLevel) -> pl.DataFrame:
    """
    Return *df* with exactly the level's canonical columns, all String.

    Missing columns are added as nulls; cells are trimmed and blanks become
    null; code columns are normalized (float rendering undone).
    """
    columns = LEVEL_COLUMNS[level]
    if df.height == 0:
        return pl.DataFrame(schema={c: pl.String for c in columns})
    df = df.rename({c: c.strip().lower() for c in df.columns})
    df = _resolve_aliases(df, level)

    missing = [c for c in columns if c not in df.columns]
    if missing:
        df = df.with_columns([pl.lit(None, dtype=pl.String).alias(c) for c in missing])

    cleaned = []
    for col in columns:
        expr = pl.col(col).cast(pl.String).str.strip_chars()
        expr = pl.when(expr == "").then(None).otherwise(expr)
        if col in CODE_COLUMNS:
            expr = expr.map_elements(normalize_code, return_dtype=pl.String)
        cleaned.append(expr.alias(col))
    return df.select(cleaned)


def split_malformed(df: pl.DataFrame, level: GeoLevel) -> tuple[pl.DataFrame, pl.DataFrame]:
    """Split rows into (valid, malformed) on the level's required columns."""
    complete = pl.all_horizontal([pl.col(c).is_not_null() for c in REQUIRED_COLUMNS[level]])
    valid = df.filter(complete)
    malformed = df.filter(~complete)
    if malformed.height:
        log.warning(
            "malformed_rows",
            level=level.value,
            count=malformed.height,
            sample_codes=malformed.get_column("code").head(5).to_list(),
        )
    return valid, malformed


def dedupe_last(df: pl.DataFrame) -> tuple[pl.DataFrame, int]:
    """Keep the last row per code (later rows in an extract are corrections)."""
    deduped = df.unique(subset=["code"], keep="last", maintain_order=True)
    return deduped, df.height - deduped.height
