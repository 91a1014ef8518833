from __future__ import annotations

import copy
from datetime import date, datetime, timedelta, timezone

import pytest

from gatepass.directory.models import DirectoryConfig
from gatepass.directory.service import StaticDirectory
from gatepass.domain.models import RequesterSnapshot, RequestContent
from gatepass.lifecycle.engine import RequestLifecycleEngine
from gatepass.storage.db import SqliteRecordStore
from gatepass.storage.memory import InMemoryRecordStore

DIRECTORY_DATA = {
    "version": 1,
    "members": [
        {
            "id": "hod-cse",
            "name": "Dr. Ramesh Kumar",
            "role": "hod",
            "handles": {"department": "CSE"},
        },
        {
            "id": "ca-cse-3a",
            "name": "Prof. Deepa Krishnan",
            "role": "advisor",
            "handles": {"department": "CSE", "year": 3, "section": "A"},
        },
        {
            "id": "ca-cse-3b",
            "name": "Prof. Karthik Rajan",
            "role": "advisor",
            "handles": {"department": "CSE", "year": 3, "section": "B"},
        },
        {"id": "sec-main", "name": "Rajan Kumar", "role": "security"},
        {"id": "sec-north", "name": "Suresh Babu", "role": "security"},
        {
            "id": "stu-1",
            "name": "Anand Raj",
            "role": "student",
            "email": "anand.raj@smvec.ac.in",
            "department": "CSE",
            "year": 3,
            "section": "A",
            "roll_number": "21CS001",
            "phone": "+91 9876500001",
        },
        {
            "id": "stu-2",
            "name": "Kavya Menon",
            "role": "student",
            "department": "MECH",
            "year": 1,
            "section": "C",
            "roll_number": "24ME090",
            "phone": "+91 9876500009",
        },
    ],
}


class FixedClock:
    """Deterministic clock advancing one minute per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = value + timedelta(minutes=1)
        return value


@pytest.fixture
def directory_data() -> dict:
    return copy.deepcopy(DIRECTORY_DATA)


@pytest.fixture
def directory(directory_data) -> StaticDirectory:
    return StaticDirectory(DirectoryConfig.model_validate(directory_data))


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        yield InMemoryRecordStore()
        return
    sqlite_store = SqliteRecordStore(str(tmp_path / "gatepass.db"))
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def engine(store, directory, clock) -> RequestLifecycleEngine:
    return RequestLifecycleEngine(store, directory, clock=clock)


@pytest.fixture
def requester(directory) -> RequesterSnapshot:
    return directory.requester_snapshot("stu-1")


@pytest.fixture
def content() -> RequestContent:
    return RequestContent(
        reason="Family function",
        destination="Chennai",
        exit_date=date(2026, 3, 2),
        expected_return_date=date(2026, 3, 4),
    )
