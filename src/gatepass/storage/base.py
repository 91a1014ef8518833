"""Record store contract for requests and scan logs."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping

from gatepass.domain.models import Request, ScanLog

# Fields a conditional update may compare or write. Requester and content
# attributes are immutable once the request exists.
MUTABLE_FIELDS = frozenset(
    {
        "status",
        "advisor_status",
        "advisor_remarks",
        "advisor_action_at",
        "hod_status",
        "hod_remarks",
        "hod_action_at",
        "qr_token",
        "qr_used",
        "used_at",
        "used_by",
    }
)

QUERY_FIELDS = frozenset({"requester_id", "advisor_id", "hod_id", "status"})


def check_fields(names: Mapping[str, object], allowed: frozenset[str], label: str) -> None:
    unknown = sorted(set(names) - allowed)
    if unknown:
        raise ValueError(f"Unsupported {label} field(s): {', '.join(unknown)}")


class RecordStore(ABC):
    """Durable storage keyed by request id.

    ``conditional_update`` is the only write path for existing requests. It
    applies ``changes`` only if every field in ``expected`` still holds the
    given value, all-or-nothing, and returns whether it applied.
    """

    @abstractmethod
    def insert_request(self, request: Request) -> None: ...

    @abstractmethod
    def get_request(self, request_id: str) -> Request | None: ...

    @abstractmethod
    def find_by_token(self, token: str) -> Request | None: ...

    @abstractmethod
    def query_requests(self, filters: Mapping[str, object]) -> list[Request]:
        """Return requests matching all equality filters, newest first."""

    @abstractmethod
    def conditional_update(
        self,
        request_id: str,
        expected: Mapping[str, object],
        changes: Mapping[str, object],
        scan_log: ScanLog | None = None,
    ) -> bool:
        """Compare-and-set; ``scan_log`` is appended in the same step when it applies."""

    @abstractmethod
    def list_scan_logs(self, scanned_by: str | None = None, limit: int = 50) -> list[ScanLog]:
        """Return scan logs newest first, optionally for one scanner."""

    def close(self) -> None:
        return None
