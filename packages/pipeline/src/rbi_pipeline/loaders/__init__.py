"""Chunked DuckDB commits and the Supabase publisher."""
