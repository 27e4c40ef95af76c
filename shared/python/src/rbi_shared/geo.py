"""
geo.py — PSGC code helpers.

PSGC codes are positional: the leading digits of any code identify its
ancestors (2 digits region, 4 digits province, 6 digits city/municipality).
Codes in published extracts come either bare ("1375") or zero padded to the
full width ("137500000"). These helpers derive an ancestor code from a child
code, preferring a code that already exists over inventing a new one.

Usage:
    from rbi_shared.geo import derive_parent_code, normalize_code

    normalize_code(" 0137 ")                                # "0137"
    derive_parent_code("137501001", GeoLevel.PROVINCE)      # "137500000"
    derive_parent_code("137501001", GeoLevel.PROVINCE, known={"1375"})  # "1375"
"""

from __future__ import annotations

import re
from collections.abc import Collection

from rbi_shared.constants import CODE_PREFIX_LENGTH, PLACEHOLDER_NAMES, GeoLevel

_NUMERIC_FLOAT = re.compile(r"(\d+)\.0+")


def normalize_code(raw: object) -> str | None:
    """
    Clean a raw code cell: strip whitespace, undo float rendering
    ("130000000.0" from spreadsheet exports). Returns None for blanks.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s or s.lower() in ("nan", "null", "none"):
        return None
    m = _NUMERIC_FLOAT.fullmatch(s)
    if m:
        s = m.group(1)
    return s


def code_prefix(code: str, level: GeoLevel) -> str:
    """Leading digits of *code* that identify its ancestor at *level*."""
    return code[: CODE_PREFIX_LENGTH[level]]


def is_ancestor_code(candidate: str, code: str, level: GeoLevel) -> bool:
    """
    True when *candidate* is a plausible *level* ancestor of *code*: it shares
    the level prefix and is either bare or zero padded after it.
    """
    prefix = code_prefix(code, level)
    if not candidate.startswith(prefix):
        return False
    return set(candidate[len(prefix):]) <= {"0"}


def derive_parent_code(
    code: str,
    parent_level: GeoLevel,
    known: Collection[str] = (),
) -> str:
    """
    Derive the *parent_level* ancestor code of *code*.

    A known code matching the prefix wins (bare form first). Otherwise the
    prefix is zero padded to the child's width, the PSGC publication form.
    """
    prefix = code_prefix(code, parent_level)
    if prefix in known:
        return prefix
    padded = prefix.ljust(len(code), "0")
    if padded in known:
        return padded
    for candidate in sorted(known):
        if is_ancestor_code(candidate, code, parent_level):
            return candidate
    return padded


def placeholder_name(level: GeoLevel, code: str) -> str:
    """Display name given to a synthesized node."""
    return PLACEHOLDER_NAMES[level].format(code=code)


def parse_flag(raw: object) -> bool | None:
    """Parse a boolean extract cell; None when blank or unrecognised."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    s = str(raw).strip().lower()
    if s in ("true", "t", "1", "yes", "y"):
        return True
    if s in ("false", "f", "0", "no", "n"):
        return False
    return None
