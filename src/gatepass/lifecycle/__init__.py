"""Request lifecycle: approvals, credential issuance and redemption."""

from gatepass.lifecycle.engine import RequestLifecycleEngine

__all__ = ["RequestLifecycleEngine"]
