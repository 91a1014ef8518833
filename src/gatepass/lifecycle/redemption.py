"""Checkpoint redemption of issued gate passes."""

from __future__ import annotations

import logging
from uuid import uuid4

from gatepass.directory.service import Directory
from gatepass.domain.models import (
    ROLE_SECURITY,
    STATUS_APPROVED,
    STATUS_USED,
    RedemptionResult,
    ScanLog,
)
from gatepass.errors import (
    AlreadyUsedError,
    ConflictError,
    ForbiddenError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
)
from gatepass.storage.base import RecordStore
from gatepass.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


class RedemptionVerifier:
    """Consumes a credential exactly once.

    The final write is a conditional update guarded on ``qr_used`` still
    being false. A caller that loses the race re-reads the record and is
    told the pass was already used; the mutation is never retried.
    """

    def __init__(
        self,
        store: RecordStore,
        directory: Directory,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._directory = directory
        self._clock = clock

    def redeem(self, token: str, redeemer_id: str) -> RedemptionResult:
        redeemer = self._directory.get_actor(redeemer_id)
        if redeemer is None or redeemer.role != ROLE_SECURITY:
            role = redeemer.role if redeemer else "unknown"
            logger.warning("Actor %s with role %s attempted redemption", redeemer_id, role)
            raise ForbiddenError(
                f"Access denied. Required role: {ROLE_SECURITY}. Your role: {role}"
            )

        if not token or not token.strip():
            raise InputValidationError("QR token is required")

        request = self._store.find_by_token(token.strip())
        if request is None:
            raise NotFoundError("Invalid QR code")

        if request.qr_used:
            logger.warning("Replay of used gate pass for request %s", request.id)
            raise AlreadyUsedError("This QR code has already been used", used_at=request.used_at)

        if request.status != STATUS_APPROVED:
            raise InvalidStateError(
                f"Request is not approved. Current status: {request.status}",
                status=request.status,
            )

        now = self._clock()
        scan_log = ScanLog(
            id=str(uuid4()),
            request_id=request.id,
            student_id=request.requester.id,
            student_name=request.requester.name,
            student_roll_number=request.requester.roll_number,
            scanned_by=redeemer.id,
            scanned_by_name=redeemer.name,
            scan_time=now,
        )
        applied = self._store.conditional_update(
            request.id,
            expected={"qr_used": False, "status": STATUS_APPROVED},
            changes={
                "status": STATUS_USED,
                "qr_used": True,
                "used_at": now,
                "used_by": redeemer.id,
            },
            scan_log=scan_log,
        )
        if not applied:
            current = self._store.get_request(request.id)
            if current is not None and current.qr_used:
                logger.warning("Concurrent redemption lost for request %s", request.id)
                raise AlreadyUsedError(
                    "This QR code has already been used", used_at=current.used_at
                )
            raise ConflictError("Gate pass changed during verification; scan again")

        logger.info(
            "Gate pass used: request %s (%s) by %s",
            request.id,
            request.requester.roll_number,
            redeemer.id,
        )
        return RedemptionResult(
            request_id=request.id,
            student_name=request.requester.name,
            roll_number=request.requester.roll_number,
            department=request.requester.department,
            year=request.requester.year,
            section=request.requester.section,
            reason=request.content.reason,
            destination=request.content.destination,
            exit_date=request.content.exit_date,
            expected_return_date=request.content.expected_return_date,
            used_at=now,
        )
