"""Typed adapter errors and helpers for the service's error bodies.

The service answers failures with ``{"code": <int|str>, "message": <str>}``.
Anything else (plain text, HTML from a proxy, an empty body) is kept as a
short text snippet so the error still says something useful.
"""

from __future__ import annotations

from typing import Any, Optional

KIND_CLIENT = "client"
KIND_SERVER = "server"
KIND_TRANSPORT = "transport"
KIND_PROTOCOL = "protocol"

_SNIPPET_LIMIT = 400


class ApiError(RuntimeError):
    """Base class for REST adapter failures.

    ``kind`` is the discriminant callers match on: ``client`` (4xx),
    ``server`` (5xx), ``transport`` (timeouts, connection failures), or
    ``protocol`` (unexpected status or malformed body).
    """

    kind = KIND_PROTOCOL

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        hint: Optional[str] = None,
        payload: Any = None,
        context: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.hint = hint
        self.payload = payload
        self.context = context

    @property
    def detail(self) -> Optional[str]:
        """The service's own message from the error body, if any."""
        return first_string(self.payload)


class ApiClientError(ApiError):
    """HTTP 4xx from the service."""

    kind = KIND_CLIENT


class ApiServerError(ApiError):
    """HTTP 5xx from the service."""

    kind = KIND_SERVER


class ApiTimeoutError(ApiError):
    """Timeout or connection failure after the transport gave up."""

    kind = KIND_TRANSPORT

    def __init__(self, message: str, *, context: Optional[str] = None) -> None:
        super().__init__(message, context=context)


def parse_error_payload(resp: Any) -> Any:
    """Decoded JSON error body, else a text snippet, else ``None``."""
    try:
        return resp.json()
    except ValueError:
        text = (getattr(resp, "text", "") or "").strip()
        return text[:_SNIPPET_LIMIT] or None


def build_error_message(ctx: str, status: int, payload: Any) -> str:
    detail = first_string(payload)
    suffix = f"{detail} (HTTP {status})" if detail else f"HTTP {status}"
    return f"{ctx}: {suffix}"


def extract_error_code(payload: Any) -> Optional[str]:
    """``code`` from a structured body, normalized to a string."""
    if not isinstance(payload, dict):
        return None
    value = payload.get("code")
    if value is None or value == "":
        return None
    return str(value)


def extract_error_hint(payload: Any) -> Optional[str]:
    """Extra detail beyond ``message`` (``details`` or ``errors`` lists)."""
    if not isinstance(payload, dict):
        return None
    for key in ("details", "errors"):
        text = stringify(payload.get(key))
        if text:
            return text
    return None


def first_string(payload: Any) -> Optional[str]:
    if isinstance(payload, str):
        return payload.strip() or None
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            candidate = first_string(payload.get(key))
            if candidate:
                return candidate
    if isinstance(payload, list):
        for item in payload:
            candidate = first_string(item)
            if candidate:
                return candidate
    return None


def stringify(data: Any, *, limit: int = 200) -> Optional[str]:
    """Compact one-line rendering of ``data`` for error messages."""
    if data is None:
        return None
    if isinstance(data, (list, tuple)):
        parts = [text for text in (stringify(item, limit=limit) for item in data) if text]
        return "; ".join(parts[:3])[:limit] or None
    if isinstance(data, dict):
        pairs = [f"{key}={stringify(value, limit=limit)}" for key, value in list(data.items())[:4] if value]
        return ", ".join(pairs)[:limit] or None
    text = str(data).strip()
    return text[:limit] or None
