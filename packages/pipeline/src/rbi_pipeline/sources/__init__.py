"""
rbi_pipeline.sources — extract source adapters.

  PSGCSource — one PSGC level, from a local CSV directory or an HTTP base URL
"""

from rbi_pipeline.sources.psgc import EXTRACT_FILES, PSGCSource

__all__ = ["EXTRACT_FILES", "PSGCSource"]
