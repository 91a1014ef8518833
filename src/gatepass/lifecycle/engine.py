"""Request lifecycle engine: the operation set exposed to callers."""

from __future__ import annotations

import logging
from uuid import uuid4

from gatepass.directory.service import Directory
from gatepass.domain.models import (
    ROLE_ADVISOR,
    ROLE_HOD,
    ROLE_SECURITY,
    ROLE_STUDENT,
    STATUS_PENDING_ADVISOR,
    STATUS_PENDING_HOD,
    RedemptionResult,
    Request,
    RequesterSnapshot,
    RequestContent,
    ScanLog,
)
from gatepass.domain.validation import validate_new_request
from gatepass.errors import ForbiddenError
from gatepass.lifecycle.issuer import CredentialIssuer
from gatepass.lifecycle.redemption import RedemptionVerifier
from gatepass.lifecycle.transitions import TransitionAuthority
from gatepass.storage.base import RecordStore
from gatepass.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SCAN_HISTORY_LIMIT = 50


class RequestLifecycleEngine:
    """
    Stateless service over an external record store and directory.

    All durable state lives in ``store``; every call is independent and
    either completes its single conditional write or leaves the record
    untouched.
    """

    def __init__(
        self,
        store: RecordStore,
        directory: Directory,
        clock: Clock = utc_now,
        issuer: CredentialIssuer | None = None,
        scan_history_limit: int = DEFAULT_SCAN_HISTORY_LIMIT,
    ) -> None:
        self._store = store
        self._directory = directory
        self._clock = clock
        self._scan_history_limit = scan_history_limit
        self._transitions = TransitionAuthority(
            store, directory, issuer or CredentialIssuer(), clock
        )
        self._redemption = RedemptionVerifier(store, directory, clock)

    def create_request(self, requester: RequesterSnapshot, content: RequestContent) -> Request:
        self._require_role(requester.id, ROLE_STUDENT)
        validate_new_request(requester, content)

        # Gatekeepers are resolved once here and never re-resolved.
        assignment = self._directory.resolve_assignment(requester)
        request = Request(
            id=str(uuid4()),
            requester=requester,
            content=content,
            advisor_id=assignment.advisor_id,
            hod_id=assignment.hod_id,
            created_at=self._clock(),
        )
        self._store.insert_request(request)
        logger.info(
            "New gate pass request %s from %s (advisor=%s, hod=%s)",
            request.id,
            requester.roll_number,
            assignment.advisor_id or "None",
            assignment.hod_id or "None",
        )
        return request

    def advisor_decide(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        remarks: str | None = None,
    ) -> Request:
        return self._transitions.advisor_decide(request_id, actor_id, decision, remarks)

    def hod_decide(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        remarks: str | None = None,
    ) -> Request:
        return self._transitions.hod_decide(request_id, actor_id, decision, remarks)

    def redeem(self, token: str, redeemer_id: str) -> RedemptionResult:
        return self._redemption.redeem(token, redeemer_id)

    def list_requests(self, role: str, actor_id: str) -> list[Request]:
        """Read-only listing scoped to what ``actor_id`` may see in ``role``.

        Students see their own requests; advisors and HODs see only requests
        currently awaiting their own stage.
        """
        self._require_role(actor_id, role)
        if role == ROLE_STUDENT:
            return self._store.query_requests({"requester_id": actor_id})
        if role == ROLE_ADVISOR:
            return self._store.query_requests(
                {"advisor_id": actor_id, "status": STATUS_PENDING_ADVISOR}
            )
        if role == ROLE_HOD:
            return self._store.query_requests({"hod_id": actor_id, "status": STATUS_PENDING_HOD})
        raise ForbiddenError(f"Role {role!r} has no request listing")

    def scan_history(self, actor_id: str, limit: int | None = None) -> list[ScanLog]:
        self._require_role(actor_id, ROLE_SECURITY)
        effective = self._scan_history_limit if limit is None else max(1, limit)
        return self._store.list_scan_logs(
            scanned_by=actor_id, limit=min(effective, self._scan_history_limit)
        )

    def _require_role(self, actor_id: str, role: str) -> None:
        actual = self._directory.role_of(actor_id)
        if actual != role:
            logger.warning("Actor %s with role %s denied %s access", actor_id, actual, role)
            raise ForbiddenError(
                f"Access denied. Required role: {role}. Your role: {actual or 'unknown'}"
            )
