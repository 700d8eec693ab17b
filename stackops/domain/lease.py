"""Holder for the update-scoped lease token.

The renewal loop is the only writer; checkpoint, event, and completion calls
read the freshest token through ``current()``.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .errors import LeaseExpiredError

Clock = Callable[[], float]


class LeaseToken:
    """Thread-safe single-writer/multi-reader lease token with a local expiry estimate."""

    def __init__(self, token: str, duration_s: float, *, clock: Clock = time.monotonic) -> None:
        if not token:
            raise ValueError("Lease token must be a non-empty string.")
        self._clock = clock
        self._lock = threading.Lock()
        self._token = token
        self._expires_at = clock() + float(duration_s)
        self._failure: Optional[LeaseExpiredError] = None
        self._revoked = False

    def current(self) -> str:
        """Return the freshest token, or raise once the lease is no longer usable."""
        with self._lock:
            if self._failure is not None:
                raise self._failure
            if self._revoked:
                raise LeaseExpiredError("Update lease was revoked.")
            if self._clock() >= self._expires_at:
                raise LeaseExpiredError()
            return self._token

    def replace(self, token: str, duration_s: float) -> None:
        if not token:
            raise ValueError("Renewed lease token must be a non-empty string.")
        with self._lock:
            if self._revoked or self._failure is not None:
                return
            self._token = token
            self._expires_at = self._clock() + float(duration_s)

    def is_expired(self) -> bool:
        with self._lock:
            return self._clock() >= self._expires_at

    def seconds_remaining(self) -> float:
        with self._lock:
            return max(0.0, self._expires_at - self._clock())

    def fail(self, error: LeaseExpiredError) -> None:
        with self._lock:
            if self._failure is None:
                self._failure = error

    @property
    def failure(self) -> Optional[LeaseExpiredError]:
        with self._lock:
            return self._failure

    def revoke(self) -> None:
        with self._lock:
            self._revoked = True

    @property
    def revoked(self) -> bool:
        with self._lock:
            return self._revoked


__all__ = ["Clock", "LeaseToken"]
