"""Directory collaborator: roles and stage assignments."""

from gatepass.directory.service import Directory, StaticDirectory

__all__ = ["Directory", "StaticDirectory"]
