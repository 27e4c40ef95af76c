"""
config.py — pydantic-settings Settings class.

All environment variables for the rbi platform are declared here.
The stores, the pipeline, and the API import `settings` from this module.

Usage:
    from rbi_shared.config import settings
    print(settings.duckdb_path)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # DuckDB (system of record for geography + registry)
    # -------------------------------------------------------------------------
    duckdb_path: str = Field(default="./data/rbi.duckdb")

    # -------------------------------------------------------------------------
    # Supabase (publish target)
    # -------------------------------------------------------------------------
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_anon_key: str = Field(default="")
    supabase_service_key: str = Field(default="")

    # -------------------------------------------------------------------------
    # PSGC extracts
    # -------------------------------------------------------------------------
    psgc_extract_dir: str = Field(default="./data/psgc")
    psgc_base_url: str = Field(default="")

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------
    reconcile_batch_size: int = Field(default=500, ge=1)
    reconcile_workers: int = Field(default=4, ge=1)
    reconcile_max_attempts: int = Field(default=3, ge=1)
    synthesize_placeholders: bool = Field(default=True)
    prune_orphan_placeholders: bool = Field(default=True)

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------
    sweep_batch_size: int = Field(default=200, ge=1)
    checkpoint_dir: str = Field(default="./data/cache")
    osy_policy: Literal["strict", "inclusive"] = Field(default="strict")
    senior_citizen_age: int = Field(default=60, ge=0)

    # -------------------------------------------------------------------------
    # API server
    # -------------------------------------------------------------------------
    geography_cache_ttl: float = Field(default=300.0, gt=0)
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    cors_origins: str = Field(default="http://localhost:3000")

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    # -------------------------------------------------------------------------
    # Derived / computed
    # -------------------------------------------------------------------------
    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @field_validator("supabase_url", "psgc_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v


# ---------------------------------------------------------------------------
# Module-level singleton, imported everywhere
# ---------------------------------------------------------------------------
settings = Settings()
