"""Directory lookups used by the lifecycle engine."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from gatepass.directory.models import DirectoryConfig, MemberEntry
from gatepass.domain.models import (
    ROLE_ADVISOR,
    ROLE_HOD,
    ROLE_STUDENT,
    Actor,
    Assignment,
    RequesterSnapshot,
)

logger = logging.getLogger(__name__)


class Directory(ABC):
    """Resolves actors, their roles and the gatekeepers assigned to a requester."""

    @abstractmethod
    def resolve_assignment(self, requester: RequesterSnapshot) -> Assignment:
        """Return the advisor and HOD for a requester; either may be None."""

    @abstractmethod
    def get_actor(self, actor_id: str) -> Actor | None:
        """Return the actor or None when the id is unknown."""

    def role_of(self, actor_id: str) -> str | None:
        actor = self.get_actor(actor_id)
        return actor.role if actor else None


class StaticDirectory(Directory):
    """
    In-process directory backed by a loaded member list.

    Assignment is first-match-wins in file order:
    - advisor: handles the requester's department, year and section
    - hod: handles the requester's department
    """

    def __init__(self, config: DirectoryConfig) -> None:
        self._members: dict[str, MemberEntry] = {m.id: m for m in config.members}
        self._advisors = [m for m in config.members if m.role == ROLE_ADVISOR]
        self._hods = [m for m in config.members if m.role == ROLE_HOD]
        logger.info(
            "Directory initialized with %d members (%d advisors, %d hods)",
            len(self._members),
            len(self._advisors),
            len(self._hods),
        )

    def resolve_assignment(self, requester: RequesterSnapshot) -> Assignment:
        advisor = next(
            (
                m
                for m in self._advisors
                if m.handles is not None
                and m.handles.department == requester.department
                and m.handles.year == requester.year
                and m.handles.section == requester.section
            ),
            None,
        )
        hod = next(
            (
                m
                for m in self._hods
                if m.handles is not None and m.handles.department == requester.department
            ),
            None,
        )
        if advisor is None:
            logger.warning(
                "No advisor found for %s year %s section %s",
                requester.department,
                requester.year,
                requester.section,
            )
        if hod is None:
            logger.warning("No HOD found for %s", requester.department)
        return Assignment(
            advisor_id=advisor.id if advisor else None,
            hod_id=hod.id if hod else None,
        )

    def get_actor(self, actor_id: str) -> Actor | None:
        member = self._members.get(actor_id)
        if member is None:
            return None
        if member.role != ROLE_STUDENT:
            return Actor(id=member.id, role=member.role, name=member.name)
        assignment = self.resolve_assignment(self._snapshot(member))
        return Actor(
            id=member.id,
            role=member.role,
            name=member.name,
            assigned_advisor_id=assignment.advisor_id,
            assigned_hod_id=assignment.hod_id,
        )

    def requester_snapshot(
        self, actor_id: str, contact_number: str | None = None
    ) -> RequesterSnapshot | None:
        """Build the immutable requester snapshot for a student member."""
        member = self._members.get(actor_id)
        if member is None or member.role != ROLE_STUDENT:
            return None
        return self._snapshot(member, contact_number)

    def profile(self, actor_id: str) -> dict[str, object] | None:
        member = self._members.get(actor_id)
        if member is None:
            return None
        return member.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _snapshot(member: MemberEntry, contact_number: str | None = None) -> RequesterSnapshot:
        return RequesterSnapshot(
            id=member.id,
            name=member.name,
            roll_number=member.roll_number or "",
            department=member.department or "",
            year=member.year or "",
            section=member.section or "",
            contact_number=contact_number or member.phone or "",
            email=member.email,
        )
