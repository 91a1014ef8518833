"""Error kinds raised by the request lifecycle engine.

Every error carries a stable ``code`` so callers can branch on the kind
without parsing messages.
"""

from __future__ import annotations

from datetime import datetime


class GatePassError(Exception):
    """Base lifecycle failure with error code."""

    code = "gatepass_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, object]:
        return {"error": self.code, "message": self.message}


class NotFoundError(GatePassError):
    code = "not_found"


class ForbiddenError(GatePassError):
    code = "forbidden"


class InvalidStateError(GatePassError):
    code = "invalid_state"

    def __init__(self, message: str, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        if self.status is not None:
            data["status"] = self.status
        return data


class InputValidationError(GatePassError):
    code = "validation_error"


class AlreadyUsedError(GatePassError):
    code = "already_used"

    def __init__(self, message: str, used_at: datetime | None = None) -> None:
        super().__init__(message)
        self.used_at = used_at

    def to_dict(self) -> dict[str, object]:
        data = super().to_dict()
        data["usedAt"] = self.used_at.isoformat() if self.used_at else None
        return data


class ConflictError(GatePassError):
    code = "conflict"
