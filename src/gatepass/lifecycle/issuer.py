"""Single-use credential minting."""

from __future__ import annotations

import logging
from collections.abc import Callable
from uuid import uuid4

from gatepass.domain.models import Request
from gatepass.errors import InvalidStateError

logger = logging.getLogger(__name__)

TokenFactory = Callable[[], str]


def new_token() -> str:
    """Opaque random lookup key (UUIDv4, 122 random bits)."""
    return str(uuid4())


class CredentialIssuer:
    def __init__(self, token_factory: TokenFactory = new_token) -> None:
        self._token_factory = token_factory

    def issue(self, request: Request) -> dict[str, object]:
        """Return the field changes that bind a fresh token to ``request``.

        The token is written exactly once; a request that already holds one
        is never re-issued.
        """
        if request.qr_token is not None:
            raise InvalidStateError(
                "A gate pass has already been issued for this request",
                status=request.status,
            )
        token = self._token_factory()
        if not token:
            raise RuntimeError("Token factory returned an empty token")
        logger.debug("Minted credential for request %s", request.id)
        return {"qr_token": token, "qr_used": False}
