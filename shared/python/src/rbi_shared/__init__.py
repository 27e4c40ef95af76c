"""
rbi_shared — shared configuration, models, stores and derivation rules for the rbi platform.

Usage:
    from rbi_shared.config import settings
    from rbi_shared.db import Database, get_database, get_supabase_client
    from rbi_shared.stores.geography import GeographyStore
    from rbi_shared.stores.registry import RegistryStore
    from rbi_shared.derivation.engine import DerivationEngine
    from rbi_shared.constants import GeoLevel, Provenance
"""

__version__ = "0.1.0"
