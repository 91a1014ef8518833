"""SQLite access layer for gate-pass requests and scan logs."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from pathlib import Path

from gatepass.domain.models import Request, RequesterSnapshot, RequestContent, ScanLog
from gatepass.storage.base import MUTABLE_FIELDS, QUERY_FIELDS, RecordStore, check_fields
from gatepass.utils.time import parse_timestamp

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


def _to_sql(name: str, value: object) -> _SqlValue:
    if name == "qr_used":
        return 1 if value else 0
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value  # type: ignore[return-value]


def _row_to_request(row: sqlite3.Row) -> Request:
    return Request(
        id=row["request_id"],
        requester=RequesterSnapshot(
            id=row["student_id"],
            name=row["student_name"],
            roll_number=row["student_roll_number"],
            department=row["department"],
            year=row["year"],
            section=row["section"],
            contact_number=row["contact_number"],
            email=row["student_email"],
        ),
        content=RequestContent(
            reason=row["reason"],
            destination=row["destination"],
            exit_date=date.fromisoformat(row["exit_date"]),
            expected_return_date=date.fromisoformat(row["expected_return_date"]),
        ),
        advisor_id=row["advisor_id"],
        hod_id=row["hod_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        status=row["status"],
        advisor_status=row["advisor_status"],
        advisor_remarks=row["advisor_remarks"],
        advisor_action_at=parse_timestamp(row["advisor_action_at"]),
        hod_status=row["hod_status"],
        hod_remarks=row["hod_remarks"],
        hod_action_at=parse_timestamp(row["hod_action_at"]),
        qr_token=row["qr_token"],
        qr_used=bool(row["qr_used"]),
        used_at=parse_timestamp(row["used_at"]),
        used_by=row["used_by"],
    )


def _row_to_scan_log(row: sqlite3.Row) -> ScanLog:
    return ScanLog(
        id=row["log_id"],
        request_id=row["request_id"],
        student_id=row["student_id"],
        student_name=row["student_name"],
        student_roll_number=row["student_roll_number"],
        scanned_by=row["scanned_by"],
        scanned_by_name=row["scanned_by_name"],
        scan_time=datetime.fromisoformat(row["scan_time"]),
    )


class SqliteRecordStore(RecordStore):
    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS gate_requests (
                request_id TEXT PRIMARY KEY,
                student_id TEXT NOT NULL,
                student_name TEXT NOT NULL,
                student_email TEXT,
                student_roll_number TEXT NOT NULL,
                department TEXT NOT NULL,
                year TEXT NOT NULL,
                section TEXT NOT NULL,
                contact_number TEXT NOT NULL,
                reason TEXT NOT NULL,
                destination TEXT NOT NULL,
                exit_date TEXT NOT NULL,
                expected_return_date TEXT NOT NULL,
                status TEXT NOT NULL,
                advisor_id TEXT,
                advisor_status TEXT NOT NULL,
                advisor_remarks TEXT,
                advisor_action_at TEXT,
                hod_id TEXT,
                hod_status TEXT NOT NULL,
                hod_remarks TEXT,
                hod_action_at TEXT,
                qr_token TEXT UNIQUE,
                qr_used INTEGER NOT NULL DEFAULT 0,
                used_at TEXT,
                used_by TEXT,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS scan_logs (
                log_id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL,
                student_id TEXT NOT NULL,
                student_name TEXT NOT NULL,
                student_roll_number TEXT NOT NULL,
                scanned_by TEXT NOT NULL,
                scanned_by_name TEXT NOT NULL,
                scan_time TEXT NOT NULL,
                FOREIGN KEY(request_id) REFERENCES gate_requests(request_id)
            );

            CREATE INDEX IF NOT EXISTS idx_gate_requests_student
                ON gate_requests(student_id, created_at);
            CREATE INDEX IF NOT EXISTS idx_gate_requests_advisor_status
                ON gate_requests(advisor_id, status);
            CREATE INDEX IF NOT EXISTS idx_gate_requests_hod_status
                ON gate_requests(hod_id, status);
            CREATE INDEX IF NOT EXISTS idx_scan_logs_scanned_by
                ON scan_logs(scanned_by, scan_time);
            """
        )
        self._conn.commit()

    def execute(
        self,
        query: str,
        params: _SqlParams,
    ) -> None:
        with self._lock:
            self._conn.execute(query, params)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    def fetch_one(
        self,
        query: str,
        params: _SqlParams,
    ) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(
        self,
        query: str,
        params: _SqlParams,
    ) -> list[sqlite3.Row]:
        with self._lock:
            return self._conn.execute(query, params).fetchall()

    def insert_request(self, request: Request) -> None:
        self.execute(
            """
            INSERT INTO gate_requests (
                request_id, student_id, student_name, student_email,
                student_roll_number, department, year, section, contact_number,
                reason, destination, exit_date, expected_return_date,
                status, advisor_id, advisor_status, advisor_remarks, advisor_action_at,
                hod_id, hod_status, hod_remarks, hod_action_at,
                qr_token, qr_used, used_at, used_by, created_at
            ) VALUES (
                ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?,
                ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?
            )
            """,
            (
                request.id,
                request.requester.id,
                request.requester.name,
                request.requester.email,
                request.requester.roll_number,
                request.requester.department,
                request.requester.year,
                request.requester.section,
                request.requester.contact_number,
                request.content.reason,
                request.content.destination,
                request.content.exit_date.isoformat(),
                request.content.expected_return_date.isoformat(),
                request.status,
                request.advisor_id,
                request.advisor_status,
                request.advisor_remarks,
                _to_sql("advisor_action_at", request.advisor_action_at),
                request.hod_id,
                request.hod_status,
                request.hod_remarks,
                _to_sql("hod_action_at", request.hod_action_at),
                request.qr_token,
                _to_sql("qr_used", request.qr_used),
                _to_sql("used_at", request.used_at),
                request.used_by,
                request.created_at.isoformat(),
            ),
        )

    def get_request(self, request_id: str) -> Request | None:
        row = self.fetch_one("SELECT * FROM gate_requests WHERE request_id = ?", (request_id,))
        if row is None:
            return None
        return _row_to_request(row)

    def find_by_token(self, token: str) -> Request | None:
        row = self.fetch_one(
            "SELECT * FROM gate_requests WHERE qr_token = ? LIMIT 1",
            (token,),
        )
        if row is None:
            return None
        return _row_to_request(row)

    def query_requests(self, filters: Mapping[str, object]) -> list[Request]:
        check_fields(filters, QUERY_FIELDS, "query")
        clauses: list[str] = []
        params: list[_SqlValue] = []
        for name, value in filters.items():
            column = "student_id" if name == "requester_id" else name
            clauses.append(f"{column} IS ?")
            params.append(_to_sql(name, value))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = self.fetch_all(
            f"SELECT * FROM gate_requests {where} ORDER BY created_at DESC, rowid DESC",
            params,
        )
        return [_row_to_request(row) for row in rows]

    def conditional_update(
        self,
        request_id: str,
        expected: Mapping[str, object],
        changes: Mapping[str, object],
        scan_log: ScanLog | None = None,
    ) -> bool:
        """Apply ``changes`` with a single guarded UPDATE.

        The WHERE clause carries every expected value, so SQLite decides the
        race: a rowcount of 1 means the caller won. The scan log insert
        commits in the same transaction.
        """
        check_fields(expected, MUTABLE_FIELDS, "expected")
        check_fields(changes, MUTABLE_FIELDS, "change")
        if not changes:
            raise ValueError("conditional_update requires at least one change")

        assignments = ", ".join(f"{name} = ?" for name in changes)
        conditions = "".join(f" AND {name} IS ?" for name in expected)
        params: list[_SqlValue] = [_to_sql(name, value) for name, value in changes.items()]
        params.append(request_id)
        params.extend(_to_sql(name, value) for name, value in expected.items())

        with self._lock:
            try:
                cursor = self._conn.execute(
                    f"UPDATE gate_requests SET {assignments} WHERE request_id = ?{conditions}",
                    params,
                )
                if cursor.rowcount != 1:
                    self._conn.rollback()
                    return False
                if scan_log is not None:
                    self._conn.execute(
                        """
                        INSERT INTO scan_logs (
                            log_id, request_id, student_id, student_name,
                            student_roll_number, scanned_by, scanned_by_name, scan_time
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            scan_log.id,
                            scan_log.request_id,
                            scan_log.student_id,
                            scan_log.student_name,
                            scan_log.student_roll_number,
                            scan_log.scanned_by,
                            scan_log.scanned_by_name,
                            scan_log.scan_time.isoformat(),
                        ),
                    )
                self._conn.commit()
                return True
            except sqlite3.Error:
                self._conn.rollback()
                raise

    def list_scan_logs(self, scanned_by: str | None = None, limit: int = 50) -> list[ScanLog]:
        if scanned_by is None:
            rows = self.fetch_all(
                "SELECT * FROM scan_logs ORDER BY scan_time DESC, rowid DESC LIMIT ?",
                (limit,),
            )
        else:
            rows = self.fetch_all(
                (
                    "SELECT * FROM scan_logs WHERE scanned_by = ? "
                    "ORDER BY scan_time DESC, rowid DESC LIMIT ?"
                ),
                (scanned_by, limit),
            )
        return [_row_to_scan_log(row) for row in rows]
