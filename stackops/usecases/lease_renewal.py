"""Background loop keeping an update lease valid while the update runs.

The loop is the only writer of the session's ``LeaseToken``. Each renewal
sends the current token and swaps in the token the service returns. Transient
failures are retried by the transport (``renew_lease`` is retry-safe) and then
again by the loop at a shorter cadence; once the local expiry estimate passes,
or the service rejects the token outright, the lease is failed with
``LeaseExpiredError`` and the loop stops. Readers then get that error from
``LeaseToken.current()`` instead of sending doomed requests.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from stackops.adapters.api_errors import ApiClientError, ApiError
from stackops.domain.errors import LeaseExpiredError
from stackops.domain.identifiers import UpdateIdentifier
from stackops.domain.lease import LeaseToken
from stackops.domain.ports import StackServicePort

FailureHook = Callable[[LeaseExpiredError], None]

# the service refused the token or the update; other 4xx (408, 429) are transient
_REJECTED_STATUSES = frozenset({401, 403, 404})


class LeaseRenewalLoop:
    """Renew ``lease`` every ``interval_s`` seconds on a daemon thread."""

    def __init__(
        self,
        service: StackServicePort,
        update: UpdateIdentifier,
        lease: LeaseToken,
        *,
        duration_s: int,
        interval_s: Optional[float] = None,
        retry_interval_s: Optional[float] = None,
        on_failure: Optional[FailureHook] = None,
    ) -> None:
        if duration_s <= 0:
            raise ValueError("Lease duration must be positive.")
        self._log = logging.getLogger(__name__)
        self.service = service
        self.update = update
        self.lease = lease
        self.duration_s = int(duration_s)
        self.interval_s = float(interval_s) if interval_s is not None else duration_s / 2.0
        if self.interval_s <= 0 or self.interval_s >= duration_s:
            raise ValueError("Renewal interval must be positive and shorter than the lease duration.")
        self.retry_interval_s = (
            float(retry_interval_s)
            if retry_interval_s is not None
            else min(self.interval_s, max(1.0, duration_s / 10.0))
        )
        self.on_failure = on_failure
        self.renewals = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Lease renewal loop already started.")
        self._thread = threading.Thread(
            target=self._run,
            name=f"lease-renewal-{self.update.update_id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to exit and wait for it unless called from the loop itself."""
        self._stop.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def renew_once(self) -> bool:
        """Attempt one renewal.

        Returns ``True`` when the token was renewed and ``False`` when the
        attempt failed transiently and should be retried. Fatal outcomes fail
        the lease and stop the loop.
        """
        try:
            token = self.lease.current()
        except LeaseExpiredError as exc:
            self._fail(exc)
            return False
        try:
            renewed = self.service.renew_update_lease(self.update, token, self.duration_s)
        except ApiClientError as exc:
            if exc.status in _REJECTED_STATUSES:
                self._fail(LeaseExpiredError(f"Lease renewal rejected for {self.update}: {exc}"))
                return False
            return self._retry_or_expire(exc)
        except ApiError as exc:
            return self._retry_or_expire(exc)
        self.lease.replace(renewed, self.duration_s)
        self.renewals += 1
        self._log.debug("Renewed lease for %s (renewal #%d).", self.update, self.renewals)
        return True

    def _retry_or_expire(self, exc: ApiError) -> bool:
        if self.lease.is_expired():
            self._fail(LeaseExpiredError(f"Lease for {self.update} expired before renewal succeeded: {exc}"))
        else:
            self._log.warning(
                "Lease renewal for %s failed (%.1fs left); retrying: %s",
                self.update,
                self.lease.seconds_remaining(),
                exc,
            )
        return False

    def _run(self) -> None:
        delay = self.interval_s
        try:
            while not self._stop.wait(delay):
                if self.renew_once():
                    delay = self.interval_s
                else:
                    delay = min(self.retry_interval_s, self.lease.seconds_remaining())
        except Exception as exc:
            self._log.exception("Lease renewal loop for %s crashed.", self.update)
            self._fail(LeaseExpiredError(f"Lease renewal loop crashed: {exc}"))

    def _fail(self, error: LeaseExpiredError) -> None:
        if self.lease.revoked:
            # the session reached a terminal state; nothing left to renew
            self._stop.set()
            return
        self._stop.set()
        self.lease.fail(error)
        self._log.error("%s", error.message)
        if self.on_failure is not None:
            self.on_failure(error)


__all__ = ["LeaseRenewalLoop"]
