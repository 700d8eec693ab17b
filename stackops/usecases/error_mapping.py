"""Translate adapter errors into user-facing UseCaseError instances."""

from __future__ import annotations


from typing import Optional

from stackops.adapters.api_errors import (
    ApiClientError,
    ApiError,
    ApiServerError,
    ApiTimeoutError,
    extract_error_hint,
)
from stackops.domain.errors import UseCaseError


def map_api_error(
    exc: Exception,
    *,
    default_code: str,
    default_message: Optional[str] = None,
) -> UseCaseError:
    """Map adapter exceptions to stable UseCaseError codes.

    Domain errors (including the distinguished conditions such as
    ``NoPreviousDeploymentError``) pass through unchanged so callers can still
    branch on their codes.
    """
    if isinstance(exc, UseCaseError):
        return exc
    if isinstance(exc, ApiTimeoutError):
        return UseCaseError("REQUEST_TIMEOUT", "Request timed out. Check connection.")
    if isinstance(exc, ApiClientError):
        status = exc.status or 0
        hint = exc.hint or exc.detail or extract_error_hint(getattr(exc, "payload", None))
        meta = {"status": status}
        if status in (401, 403):
            return UseCaseError(
                "AUTH_FAILED",
                _compose_error_message("Authorization rejected (token invalid or superseded)", hint),
                meta=meta,
            )
        if status == 404:
            return UseCaseError("NOT_FOUND", _compose_error_message("Not found", hint), meta=meta)
        if status == 409:
            return UseCaseError("CONFLICT", _compose_error_message("Conflict", hint), meta=meta)
        if status in (400, 422):
            return UseCaseError("INVALID_REQUEST", _compose_error_message("Invalid request", hint), meta=meta)
        label = f"Request failed (HTTP {status})" if status else "Request failed"
        return UseCaseError("REQUEST_FAILED", _compose_error_message(label, hint), meta=meta)
    if isinstance(exc, ApiServerError):
        return UseCaseError("SERVER_ERROR", "Service error, try again.", meta={"status": exc.status})
    if isinstance(exc, ApiError):
        return UseCaseError("API_ERROR", str(exc))

    message = default_message or str(exc) or "Unexpected error."
    return UseCaseError(default_code, message)


def _compose_error_message(base: str, hint: Optional[str]) -> str:
    """Compose a user-facing error message with optional hint text."""
    hint_text = (hint or "").strip()
    if hint_text:
        return f"{base}: {hint_text}"
    if base.endswith("."):
        return base
    return f"{base}."


__all__ = ["map_api_error"]
