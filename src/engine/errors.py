"""
Error taxonomy shared by the engines.

Engines raise these internally and turn them into the standard failure
tuple ``(False, message, {"error_kind": kind})`` at their public boundary,
so callers branch on a stable ``error_kind`` string instead of exception
classes.
"""

from __future__ import annotations

from typing import Any, Optional, Tuple

# Standard return contract for every public engine method.
Result = Tuple[bool, str, Optional[dict[str, Any]]]


class EngineError(Exception):
    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def as_result(self) -> Result:
        return (False, self.message, {"error_kind": self.kind})


class ValidationError(EngineError):
    """Rejected input; raised before any store call."""

    kind = "validation_error"


class AuthorizationError(EngineError):
    """The caller lacks the capability the operation requires."""

    kind = "authorization_error"


class StoreError(EngineError):
    """The content store failed or refused the operation."""

    kind = "store_error"


class NotFoundError(StoreError):
    kind = "not_found"


class ConflictError(StoreError):
    """The row is not in a state that allows the operation."""

    kind = "conflict"


class ConsistencyError(EngineError):
    """The write would break a counter or budget invariant."""

    kind = "consistency_error"


def ok(message: str, data: Optional[dict[str, Any]] = None) -> Result:
    return (True, message, data)
