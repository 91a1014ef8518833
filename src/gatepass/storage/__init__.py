"""Record store implementations."""

from gatepass.storage.base import RecordStore
from gatepass.storage.db import SqliteRecordStore
from gatepass.storage.memory import InMemoryRecordStore

__all__ = ["InMemoryRecordStore", "RecordStore", "SqliteRecordStore"]
