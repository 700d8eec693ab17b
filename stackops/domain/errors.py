"""Domain-level error types for use-case and adapter mapping.

Every error carries a stable string ``code`` so callers branch on the code
instead of on exception classes. The distinguished conditions below are the
ones calling code is expected to handle explicitly (first-run behavior,
force-delete prompts, lease loss).
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class UseCaseError(Exception):
    """Base class for use case level errors (user-presentable)."""

    def __init__(self, code: str, message: str, meta: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.meta = dict(meta or {})


class ValidationError(UseCaseError):
    """Malformed stack name or tags; never retried."""

    CODE = "VALIDATION_FAILED"

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(self.CODE, message, meta={"field": field} if field else None)
        self.field = field


class NoPreviousDeploymentError(UseCaseError):
    """The stack has no completed update to read configuration from."""

    CODE = "NO_PREVIOUS_DEPLOYMENT"

    def __init__(self, stack: Any) -> None:
        super().__init__(self.CODE, f"Stack {stack} has no previous deployment.")


class StackHasResourcesError(UseCaseError):
    """Delete rejected because the stack still contains resources."""

    CODE = "STACK_HAS_RESOURCES"

    def __init__(self, stack: Any, detail: Optional[str] = None) -> None:
        super().__init__(
            self.CODE,
            f"Stack {stack} still contains resources.",
            meta={"detail": detail} if detail else None,
        )
        self.detail = detail


class LeaseExpiredError(UseCaseError):
    """The update lease could not be renewed before it expired."""

    CODE = "LEASE_EXPIRED"

    def __init__(self, message: str = "Update lease expired; no further writes are authorized.") -> None:
        super().__init__(self.CODE, message)


class SessionStateError(UseCaseError):
    """Operation is not allowed in the session's current state."""

    CODE = "INVALID_SESSION_STATE"

    def __init__(self, message: str) -> None:
        super().__init__(self.CODE, message)


__all__ = [
    "LeaseExpiredError",
    "NoPreviousDeploymentError",
    "SessionStateError",
    "StackHasResourcesError",
    "UseCaseError",
    "ValidationError",
]
