"""Input validation shared by lifecycle operations."""

from __future__ import annotations

from gatepass.domain.models import (
    DECISION_REJECT,
    DECISIONS,
    RequesterSnapshot,
    RequestContent,
)
from gatepass.errors import InputValidationError

MIN_REASON_LENGTH = 10
MIN_REJECTION_REMARKS_LENGTH = 5

_REQUIRED_REQUESTER_FIELDS = (
    "id",
    "name",
    "roll_number",
    "department",
    "year",
    "section",
    "contact_number",
)
_REQUIRED_CONTENT_FIELDS = ("reason", "destination")


def _is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_new_request(requester: RequesterSnapshot, content: RequestContent) -> None:
    missing = [name for name in _REQUIRED_REQUESTER_FIELDS if _is_blank(getattr(requester, name))]
    missing.extend(
        name for name in _REQUIRED_CONTENT_FIELDS if _is_blank(getattr(content, name))
    )
    if content.exit_date is None:
        missing.append("exit_date")
    if content.expected_return_date is None:
        missing.append("expected_return_date")
    if missing:
        raise InputValidationError(f"All fields are required (missing: {', '.join(missing)})")

    if len(content.reason.strip()) < MIN_REASON_LENGTH:
        raise InputValidationError(f"Reason must be at least {MIN_REASON_LENGTH} characters")

    if content.expected_return_date < content.exit_date:
        raise InputValidationError("Expected return date cannot be before the exit date")


def validate_decision(decision: str, remarks: str | None) -> str | None:
    """Check a stage decision and return the normalized remarks."""
    if decision not in DECISIONS:
        raise InputValidationError(f"Unknown decision: {decision!r}")
    normalized = remarks.strip() if remarks else None
    if decision == DECISION_REJECT and (
        normalized is None or len(normalized) < MIN_REJECTION_REMARKS_LENGTH
    ):
        raise InputValidationError(
            f"Rejection remarks are required (min {MIN_REJECTION_REMARKS_LENGTH} characters)"
        )
    return normalized or None
