"""Configuration management for the overtime service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .database import DEFAULT_BUSY_TIMEOUT
from .models import DEFAULT_TEAM_NAME

_KNOWN_KEYS = {"database_path", "default_team_name", "busy_timeout", "strict_transitions", "admin_tokens"}


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _split_tokens(raw: object) -> Tuple[str, ...]:
    if raw is None:
        return ()
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        items = [str(item) for item in raw]
    else:
        raise ValueError("admin_tokens must be a list of strings or a comma separated string")
    return tuple(token.strip() for token in items if token.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the engine and the HTTP service."""

    database_path: Optional[Path] = None
    default_team_name: str = DEFAULT_TEAM_NAME
    busy_timeout: float = DEFAULT_BUSY_TIMEOUT
    strict_transitions: bool = False
    admin_tokens: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Dict[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""
        unknown = set(data.keys()) - _KNOWN_KEYS
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        database_path: Optional[Path] = None
        raw_path = data.get("database_path")
        if raw_path:
            candidate = Path(str(raw_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)

        team_name = str(data.get("default_team_name") or DEFAULT_TEAM_NAME).strip()
        if not team_name:
            raise ValueError("default_team_name must not be empty")

        busy_timeout = float(data.get("busy_timeout", DEFAULT_BUSY_TIMEOUT))
        if busy_timeout <= 0:
            raise ValueError("busy_timeout must be positive")

        return Settings(
            database_path=database_path,
            default_team_name=team_name,
            busy_timeout=busy_timeout,
            strict_transitions=bool(data.get("strict_transitions", False)),
            admin_tokens=_split_tokens(data.get("admin_tokens")),
        )

    def with_env_overrides(self, environ: Mapping[str, str]) -> "Settings":
        """Return a copy with ``OVERTIME_*`` environment variables applied."""
        updated = self
        db_path = environ.get("OVERTIME_DB_PATH")
        if db_path:
            updated = replace(updated, database_path=Path(db_path).expanduser().resolve(strict=False))
        strict = environ.get("OVERTIME_STRICT_TRANSITIONS")
        if strict is not None:
            updated = replace(updated, strict_transitions=_env_flag(strict))
        tokens = environ.get("OVERTIME_ADMIN_TOKENS")
        if tokens is not None:
            updated = replace(updated, admin_tokens=_split_tokens(tokens))
        return updated


def load_settings(config_path: Optional[Path], environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from a YAML file, falling back to defaults when it is absent."""
    if environ is None:
        environ = os.environ

    settings = Settings()
    if config_path is not None and config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        settings = Settings.from_dict(raw, base_path=config_path.parent)

    return settings.with_env_overrides(environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "overtime.yaml").resolve(strict=False)
    return candidate


__all__ = ["Settings", "load_settings", "resolve_config_path"]
