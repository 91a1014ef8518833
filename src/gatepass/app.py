"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from gatepass.config import Settings, load_settings
from gatepass.directory.loader import load_directory
from gatepass.directory.service import StaticDirectory
from gatepass.lifecycle.engine import RequestLifecycleEngine
from gatepass.storage.base import RecordStore
from gatepass.storage.db import SqliteRecordStore
from gatepass.storage.memory import InMemoryRecordStore


@dataclass
class AppContext:
    """Application-wide dependency container.

    Initialized once at startup and cached for the lifetime of the process.
    """

    settings: Settings
    store: RecordStore
    directory: StaticDirectory
    engine: RequestLifecycleEngine


def _build_store(settings: Settings) -> RecordStore:
    if settings.storage.backend == "memory":
        return InMemoryRecordStore()
    return SqliteRecordStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)


def build_app_context(settings: Settings) -> AppContext:
    directory = StaticDirectory(load_directory(settings.directory.path))
    store = _build_store(settings)
    engine = RequestLifecycleEngine(
        store,
        directory,
        scan_history_limit=settings.lifecycle.scan_history_limit,
    )
    return AppContext(settings=settings, store=store, directory=directory, engine=engine)


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the cached application context."""
    return build_app_context(load_settings())
