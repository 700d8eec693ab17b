from __future__ import annotations

"""Typed runtime settings for the service client."""

import os
from dataclasses import dataclass
from typing import Callable, Mapping, Optional, TypeVar

DEFAULT_API_URL = "https://api.pulumi.com"

_T = TypeVar("_T")


@dataclass
class ClientSettings:
    """Connection, retry, lease, and batching settings."""

    api_url: str = DEFAULT_API_URL
    access_token: str = ""
    request_timeout_s: int = 30
    retries: int = 3
    retry_backoff_s: float = 0.5
    retry_backoff_max_s: float = 8.0
    lease_duration_s: int = 300
    renew_interval_s: Optional[float] = None
    event_batch_size: int = 50

    def effective_renew_interval_s(self) -> float:
        """Renew well inside the server-side expiry: half the lease unless overridden."""
        if self.renew_interval_s is not None:
            return float(self.renew_interval_s)
        return self.lease_duration_s / 2.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ClientSettings":
        """Read ``STACKOPS_*`` environment variables over the defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        return cls(
            api_url=(env.get("STACKOPS_API_URL") or defaults.api_url).rstrip("/"),
            access_token=env.get("STACKOPS_ACCESS_TOKEN") or "",
            request_timeout_s=_env_number(env, "STACKOPS_REQUEST_TIMEOUT_S", int, defaults.request_timeout_s),
            retries=_env_number(env, "STACKOPS_RETRIES", int, defaults.retries),
            lease_duration_s=_env_number(env, "STACKOPS_LEASE_DURATION_S", int, defaults.lease_duration_s),
            event_batch_size=_env_number(env, "STACKOPS_EVENT_BATCH_SIZE", int, defaults.event_batch_size),
        )


def _env_number(env: Mapping[str, str], name: str, cast: Callable[[str], _T], fallback: _T) -> _T:
    raw = (env.get(name) or "").strip()
    if not raw:
        return fallback
    try:
        value = cast(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value < 0:  # type: ignore[operator]
        raise ValueError(f"{name} must not be negative, got {raw!r}")
    return value


__all__ = ["ClientSettings", "DEFAULT_API_URL"]
