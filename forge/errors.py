"""Typed failures raised by the progression core.

Every error carries a stable ``kind`` string so front-ends can map failures
to responses without inspecting message text, plus a human readable
``reason``.
"""

from __future__ import annotations


class ForgeError(Exception):
    """Base class for all failures raised by game operations."""

    kind: str = "error"

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "reason": self.reason}


class ValidationError(ForgeError, ValueError):
    """Input was rejected before any state was touched."""

    kind = "validation"


class ConflictError(ForgeError):
    """The operation clashes with the current state of an entity."""

    kind = "conflict"


class AlreadyInPartyError(ConflictError):
    kind = "already_in_party"


class PartyFullError(ConflictError):
    kind = "party_full"


class AlreadyControlledError(ConflictError):
    kind = "already_controlled"


class NotControlledError(ConflictError):
    kind = "not_controlled"


class AlreadyResolvedError(ConflictError):
    kind = "already_resolved"


class NotFoundError(ForgeError, LookupError):
    kind = "not_found"


class PermissionDeniedError(ForgeError):
    """A non-owner attempted an owner-only action."""

    kind = "permission"


class CodeGenerationError(ForgeError):
    kind = "code_generation"


__all__ = [
    "ForgeError",
    "ValidationError",
    "ConflictError",
    "AlreadyInPartyError",
    "PartyFullError",
    "AlreadyControlledError",
    "NotControlledError",
    "AlreadyResolvedError",
    "NotFoundError",
    "PermissionDeniedError",
    "CodeGenerationError",
]
