"""Domain records for gate-pass requests and scan logs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

# Request lifecycle status
STATUS_PENDING_ADVISOR = "pending_advisor"
STATUS_PENDING_HOD = "pending_hod"
STATUS_APPROVED = "approved"
STATUS_REJECTED = "rejected"
STATUS_USED = "used"

REQUEST_STATUSES = frozenset(
    {
        STATUS_PENDING_ADVISOR,
        STATUS_PENDING_HOD,
        STATUS_APPROVED,
        STATUS_REJECTED,
        STATUS_USED,
    }
)
TERMINAL_STATUSES = frozenset({STATUS_REJECTED, STATUS_USED})
TOKEN_BEARING_STATUSES = frozenset({STATUS_APPROVED, STATUS_USED})

# Per-stage decision status
STAGE_PENDING = "pending"
STAGE_APPROVED = "approved"
STAGE_REJECTED = "rejected"

DECISION_APPROVE = "approve"
DECISION_REJECT = "reject"
DECISIONS = frozenset({DECISION_APPROVE, DECISION_REJECT})

ROLE_STUDENT = "student"
ROLE_ADVISOR = "advisor"
ROLE_HOD = "hod"
ROLE_SECURITY = "security"
ROLES = frozenset({ROLE_STUDENT, ROLE_ADVISOR, ROLE_HOD, ROLE_SECURITY})

DEFAULT_APPROVAL_REMARKS = "Approved"


@dataclass(frozen=True)
class Actor:
    """A directory member acting on requests."""

    id: str
    role: str
    name: str = ""
    assigned_advisor_id: str | None = None
    assigned_hod_id: str | None = None


@dataclass(frozen=True)
class RequesterSnapshot:
    id: str
    name: str
    roll_number: str
    department: str
    year: str
    section: str
    contact_number: str
    email: str | None = None


@dataclass(frozen=True)
class RequestContent:
    reason: str
    destination: str
    exit_date: date
    expected_return_date: date


@dataclass(frozen=True)
class Assignment:
    advisor_id: str | None = None
    hod_id: str | None = None


@dataclass
class Request:
    id: str
    requester: RequesterSnapshot
    content: RequestContent
    advisor_id: str | None
    hod_id: str | None
    created_at: datetime
    status: str = STATUS_PENDING_ADVISOR
    advisor_status: str = STAGE_PENDING
    advisor_remarks: str | None = None
    advisor_action_at: datetime | None = None
    hod_status: str = STAGE_PENDING
    hod_remarks: str | None = None
    hod_action_at: datetime | None = None
    qr_token: str | None = field(default=None, repr=False)
    qr_used: bool = False
    used_at: datetime | None = None
    used_by: str | None = None

    def to_dict(self, include_token: bool = False) -> dict[str, object]:
        """Wire projection; the token is only included for the requester's own view."""
        data: dict[str, object] = {
            "id": self.id,
            "studentId": self.requester.id,
            "studentName": self.requester.name,
            "studentEmail": self.requester.email,
            "studentRollNumber": self.requester.roll_number,
            "department": self.requester.department,
            "year": self.requester.year,
            "section": self.requester.section,
            "contactNumber": self.requester.contact_number,
            "reason": self.content.reason,
            "destination": self.content.destination,
            "exitDate": self.content.exit_date.isoformat(),
            "expectedReturnDate": self.content.expected_return_date.isoformat(),
            "status": self.status,
            "advisorId": self.advisor_id,
            "advisorStatus": self.advisor_status,
            "advisorRemarks": self.advisor_remarks,
            "advisorActionAt": _iso(self.advisor_action_at),
            "hodId": self.hod_id,
            "hodStatus": self.hod_status,
            "hodRemarks": self.hod_remarks,
            "hodActionAt": _iso(self.hod_action_at),
            "qrUsed": self.qr_used,
            "usedAt": _iso(self.used_at),
            "usedBy": self.used_by,
            "createdAt": _iso(self.created_at),
        }
        if include_token:
            data["qrToken"] = self.qr_token
        return data


@dataclass(frozen=True)
class ScanLog:
    """Append-only audit row written once per successful redemption."""

    id: str
    request_id: str
    student_id: str
    student_name: str
    student_roll_number: str
    scanned_by: str
    scanned_by_name: str
    scan_time: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "requestId": self.request_id,
            "studentId": self.student_id,
            "studentName": self.student_name,
            "studentRollNumber": self.student_roll_number,
            "scannedBy": self.scanned_by,
            "scannedByName": self.scanned_by_name,
            "scanTime": _iso(self.scan_time),
        }


@dataclass(frozen=True)
class RedemptionResult:
    """What the checkpoint operator sees after a successful scan."""

    request_id: str
    student_name: str
    roll_number: str
    department: str
    year: str
    section: str
    reason: str
    destination: str
    exit_date: date
    expected_return_date: date
    used_at: datetime

    def to_dict(self) -> dict[str, object]:
        return {
            "valid": True,
            "requestId": self.request_id,
            "student": {
                "name": self.student_name,
                "rollNumber": self.roll_number,
                "department": self.department,
                "year": self.year,
                "section": self.section,
            },
            "request": {
                "reason": self.reason,
                "destination": self.destination,
                "exitDate": self.exit_date.isoformat(),
                "expectedReturnDate": self.expected_return_date.isoformat(),
            },
            "usedAt": self.used_at.isoformat(),
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
