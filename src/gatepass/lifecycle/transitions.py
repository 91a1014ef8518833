"""Two-stage approval state machine.

pending_advisor -> pending_hod -> approved, or -> rejected from either
pending state. Each stage has exactly one gatekeeper, fixed on the request
at creation time.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass

from gatepass.directory.service import Directory
from gatepass.domain.models import (
    DECISION_APPROVE,
    DEFAULT_APPROVAL_REMARKS,
    ROLE_ADVISOR,
    ROLE_HOD,
    STAGE_APPROVED,
    STAGE_PENDING,
    STAGE_REJECTED,
    STATUS_APPROVED,
    STATUS_PENDING_ADVISOR,
    STATUS_PENDING_HOD,
    STATUS_REJECTED,
    Request,
)
from gatepass.domain.validation import validate_decision
from gatepass.errors import ForbiddenError, InvalidStateError, NotFoundError
from gatepass.lifecycle.issuer import CredentialIssuer
from gatepass.storage.base import RecordStore
from gatepass.utils.time import Clock, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Stage:
    name: str
    role: str
    title: str
    pending_status: str
    approved_status: str
    issues_credential: bool = False

    @property
    def gatekeeper_field(self) -> str:
        return f"{self.name}_id"

    @property
    def status_field(self) -> str:
        return f"{self.name}_status"

    @property
    def remarks_field(self) -> str:
        return f"{self.name}_remarks"

    @property
    def action_at_field(self) -> str:
        return f"{self.name}_action_at"


ADVISOR_STAGE = _Stage(
    name="advisor",
    role=ROLE_ADVISOR,
    title="Class Advisor",
    pending_status=STATUS_PENDING_ADVISOR,
    approved_status=STATUS_PENDING_HOD,
)
HOD_STAGE = _Stage(
    name="hod",
    role=ROLE_HOD,
    title="Head of Department",
    pending_status=STATUS_PENDING_HOD,
    approved_status=STATUS_APPROVED,
    issues_credential=True,
)


class TransitionAuthority:
    def __init__(
        self,
        store: RecordStore,
        directory: Directory,
        issuer: CredentialIssuer,
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._directory = directory
        self._issuer = issuer
        self._clock = clock

    def advisor_decide(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        remarks: str | None = None,
    ) -> Request:
        return self._decide(ADVISOR_STAGE, request_id, actor_id, decision, remarks)

    def hod_decide(
        self,
        request_id: str,
        actor_id: str,
        decision: str,
        remarks: str | None = None,
    ) -> Request:
        """Decide the HOD stage; approval mints the credential in the same write."""
        return self._decide(HOD_STAGE, request_id, actor_id, decision, remarks)

    def _decide(
        self,
        stage: _Stage,
        request_id: str,
        actor_id: str,
        decision: str,
        remarks: str | None,
    ) -> Request:
        role = self._directory.role_of(actor_id)
        if role != stage.role:
            logger.warning(
                "Actor %s with role %s attempted %s decision on %s",
                actor_id,
                role,
                stage.name,
                request_id,
            )
            raise ForbiddenError(
                f"Access denied. Required role: {stage.role}. Your role: {role or 'unknown'}"
            )

        remarks = validate_decision(decision, remarks)

        request = self._store.get_request(request_id)
        if request is None:
            raise NotFoundError("Request not found")

        gatekeeper = getattr(request, stage.gatekeeper_field)
        if gatekeeper is None or gatekeeper != actor_id:
            logger.warning(
                "Actor %s is not the assigned %s for request %s", actor_id, stage.name, request_id
            )
            raise ForbiddenError(f"Not authorized to {decision} this request")

        if (
            request.status != stage.pending_status
            or getattr(request, stage.status_field) != STAGE_PENDING
        ):
            raise InvalidStateError(
                f"Request is not awaiting {stage.title} review. Current status: {request.status}",
                status=request.status,
            )

        now = self._clock()
        expected: dict[str, object] = {
            "status": stage.pending_status,
            stage.status_field: STAGE_PENDING,
        }
        if decision == DECISION_APPROVE:
            changes: dict[str, object] = {
                "status": stage.approved_status,
                stage.status_field: STAGE_APPROVED,
                stage.remarks_field: remarks or DEFAULT_APPROVAL_REMARKS,
                stage.action_at_field: now,
            }
            if stage.issues_credential:
                expected["qr_token"] = None
                changes.update(self._issuer.issue(request))
        else:
            changes = {
                "status": STATUS_REJECTED,
                stage.status_field: STAGE_REJECTED,
                stage.remarks_field: remarks,
                stage.action_at_field: now,
            }

        if not self._store.conditional_update(request_id, expected, changes):
            current = self._store.get_request(request_id)
            if current is None:
                raise NotFoundError("Request not found")
            logger.info(
                "Lost %s decision race on %s; status is now %s",
                stage.name,
                request_id,
                current.status,
            )
            raise InvalidStateError(
                f"Request was already decided. Current status: {current.status}",
                status=current.status,
            )

        logger.info(
            "%s %s request %s -> %s",
            stage.title,
            changes[stage.status_field],
            request_id,
            changes["status"],
        )
        return dataclasses.replace(request, **changes)
