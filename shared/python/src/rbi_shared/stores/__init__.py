"""
rbi_shared.stores — DuckDB-backed stores.

GeographyStore guards the PSGC hierarchy invariants; RegistryStore holds
households and residents and runs derivation synchronously on every write.
"""

from rbi_shared.stores.geography import GeographySnapshot, GeographyStore, MissingParent
from rbi_shared.stores.registry import RegistryStore

__all__ = ["GeographySnapshot", "GeographyStore", "MissingParent", "RegistryStore"]
