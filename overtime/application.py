"""Application factory that builds the service from configuration."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .api import create_app as create_api_app
from .config import Settings, load_settings, resolve_config_path
from .database import Database, resolve_database_path

logger = logging.getLogger("overtime.application")


def resolve_settings(config_path: Optional[str] = None) -> Settings:
    path = resolve_config_path(config_path or os.getenv("OVERTIME_CONFIG"))
    return load_settings(path)


def build_database(settings: Settings, *, database_path: Optional[str] = None) -> Database:
    """Open the configured database and apply pending migrations."""

    if database_path:
        db_path = Path(database_path).expanduser().resolve(strict=False)
    else:
        db_path = settings.database_path or resolve_database_path(os.getenv("OVERTIME_DB_PATH"))
    database = Database(db_path, busy_timeout=settings.busy_timeout)
    applied = database.initialize()
    if applied:
        logger.info("Database at %s migrated to version %s", db_path, applied[-1])
    return database


def create_application(
    *,
    config_path: Optional[str] = None,
    database_path: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create the ASGI application from configuration."""

    if settings is None:
        settings = resolve_settings(config_path)
    database = build_database(settings, database_path=database_path)
    return create_api_app(database=database, settings=settings)


__all__ = ["build_database", "create_application", "resolve_settings"]
