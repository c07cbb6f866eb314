"""Overtime accounting and approval engine."""

from __future__ import annotations

from typing import Any

from .database import Database, resolve_database_path
from .engine import OvertimeEngine
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OvertimeError,
    PeriodClosedError,
    ValidationError,
)
from .models import Actor
from .timesplit import split


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the JSON API application."""

    from .api import create_app as _create_app

    return _create_app(*args, **kwargs)


def create_application(*args: Any, **kwargs: Any):
    """Factory function that builds the application from configuration."""

    from .application import create_application as _create_application

    return _create_application(*args, **kwargs)


__all__ = [
    "Actor",
    "AuthorizationError",
    "ConflictError",
    "Database",
    "NotFoundError",
    "OvertimeEngine",
    "OvertimeError",
    "PeriodClosedError",
    "ValidationError",
    "create_app",
    "create_application",
    "resolve_database_path",
    "split",
]
