"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Depends

from rbi_shared.db import Database, get_database

from rbi_api.services.facade import RegistryFacade


def get_db() -> Database:
    return get_database()


def get_facade(db: Database = Depends(get_db)) -> RegistryFacade:
    return RegistryFacade(db)


__all__ = ["get_db", "get_facade"]
