"""Thread-safe in-memory record store."""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Mapping

from gatepass.domain.models import Request, ScanLog
from gatepass.storage.base import MUTABLE_FIELDS, QUERY_FIELDS, RecordStore, check_fields


def _query_value(request: Request, name: str) -> object:
    if name == "requester_id":
        return request.requester.id
    return getattr(request, name)


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._requests: dict[str, Request] = {}
        self._order: list[str] = []
        self._scan_logs: list[ScanLog] = []

    def insert_request(self, request: Request) -> None:
        with self._lock:
            if request.id in self._requests:
                raise ValueError(f"Request already exists: {request.id}")
            self._requests[request.id] = dataclasses.replace(request)
            self._order.append(request.id)

    def get_request(self, request_id: str) -> Request | None:
        with self._lock:
            stored = self._requests.get(request_id)
            return dataclasses.replace(stored) if stored else None

    def find_by_token(self, token: str) -> Request | None:
        with self._lock:
            for stored in self._requests.values():
                if stored.qr_token is not None and stored.qr_token == token:
                    return dataclasses.replace(stored)
        return None

    def query_requests(self, filters: Mapping[str, object]) -> list[Request]:
        check_fields(filters, QUERY_FIELDS, "query")
        with self._lock:
            matches = [
                self._requests[request_id]
                for request_id in self._order
                if all(
                    _query_value(self._requests[request_id], name) == value
                    for name, value in filters.items()
                )
            ]
            matches.reverse()
            matches.sort(key=lambda r: r.created_at, reverse=True)
            return [dataclasses.replace(r) for r in matches]

    def conditional_update(
        self,
        request_id: str,
        expected: Mapping[str, object],
        changes: Mapping[str, object],
        scan_log: ScanLog | None = None,
    ) -> bool:
        check_fields(expected, MUTABLE_FIELDS, "expected")
        check_fields(changes, MUTABLE_FIELDS, "change")
        if not changes:
            raise ValueError("conditional_update requires at least one change")
        with self._lock:
            stored = self._requests.get(request_id)
            if stored is None:
                return False
            if any(getattr(stored, name) != value for name, value in expected.items()):
                return False
            self._requests[request_id] = dataclasses.replace(stored, **changes)
            if scan_log is not None:
                self._scan_logs.append(scan_log)
            return True

    def list_scan_logs(self, scanned_by: str | None = None, limit: int = 50) -> list[ScanLog]:
        with self._lock:
            logs = [
                log for log in self._scan_logs if scanned_by is None or log.scanned_by == scanned_by
            ]
        logs.reverse()
        logs.sort(key=lambda log: log.scan_time, reverse=True)
        return logs[:limit]
