"""Configuration management for the gate-pass service."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class StorageSettings(BaseModel):
    backend: Literal["sqlite", "memory"] = Field(default="sqlite")
    sqlite_path: str = Field(default="./data/gatepass.sqlite")
    sqlite_wal: bool = Field(default=True)


class DirectorySettings(BaseModel):
    path: str = Field(default="./directory.yaml")


class LifecycleSettings(BaseModel):
    scan_history_limit: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Maximum number of scan log rows returned to a security actor.",
    )


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=5000, ge=1024, le=65535)
    http_allowed_origins: tuple[str, ...] = Field(default=())
    http_enable_cors: bool = Field(default=False)
    actor_header: str = Field(
        default="X-Actor-Id",
        description="Header carrying the acting user id resolved by the directory.",
    )

    @field_validator("actor_header")
    @classmethod
    def _validate_actor_header(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("actor_header must not be empty")
        return value


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    directory: DirectorySettings = Field(default_factory=DirectorySettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)


ENV_KEYS = {
    "host": "GATEPASS_HOST",
    "port": "GATEPASS_PORT",
    "actor_header": "GATEPASS_ACTOR_HEADER",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "storage_backend": "STORAGE_BACKEND",
    "sqlite_path": "SQLITE_PATH",
    "directory_path": "DIRECTORY_PATH",
    "scan_history_limit": "SCAN_HISTORY_LIMIT",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %d", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "http_allowed_origins": tuple(
                _split_csv_preserve_case(os.getenv("HTTP_ALLOWED_ORIGINS"))
            ),
            "http_enable_cors": _env_bool(
                "HTTP_ENABLE_CORS",
                ServerSettings().http_enable_cors,
            ),
            "actor_header": os.getenv(ENV_KEYS["actor_header"], ServerSettings().actor_header),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "storage": {
            "backend": os.getenv(ENV_KEYS["storage_backend"], StorageSettings().backend),
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
        },
        "directory": {
            "path": _resolve_path(
                os.getenv(ENV_KEYS["directory_path"], DirectorySettings().path)
            ),
        },
        "lifecycle": {
            "scan_history_limit": _env_int(
                ENV_KEYS["scan_history_limit"],
                LifecycleSettings().scan_history_limit,
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    if settings.server.http_enable_cors and not settings.server.http_allowed_origins:
        _config_logger.warning(
            "HTTP_ENABLE_CORS is set but HTTP_ALLOWED_ORIGINS is empty; CORS stays disabled"
        )

    if settings.storage.backend == "sqlite":
        Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
