"""Ordered engine-event shipping and event-stream paging for one update."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from stackops.adapters.api_errors import ApiError
from stackops.domain.identifiers import UpdateIdentifier
from stackops.domain.lease import LeaseToken
from stackops.domain.models import EngineEventBatch
from stackops.domain.ports import StackServicePort


class EventRecorder:
    """Buffer events in production order and ship them in batches.

    Each recorded event is stamped with a 1-based ``sequence`` number (and a
    ``timestamp`` unless the producer set one) so the service can deduplicate
    a batch replayed after a partial failure. A batch that fails to ship
    stays at the head of the buffer and is resent before any newer event.
    """

    def __init__(
        self,
        service: StackServicePort,
        update: UpdateIdentifier,
        lease: LeaseToken,
        *,
        batch_size: int = 50,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if batch_size < 1:
            raise ValueError("Event batch size must be at least 1.")
        self._log = logging.getLogger(__name__)
        self.service = service
        self.update = update
        self.lease = lease
        self.batch_size = batch_size
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: List[Dict[str, Any]] = []
        self._sequence = 0
        self.batches_sent = 0

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def record(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        """Append ``event``; ships a batch once ``batch_size`` events are pending.

        If the automatic send fails at the service, the event stays queued and
        the next full batch or ``flush()`` resends it; only ``flush()`` reports
        delivery failures. An unusable lease still raises ``LeaseExpiredError``.
        """
        with self._lock:
            self._sequence += 1
            stamped = dict(event)
            stamped["sequence"] = self._sequence
            stamped.setdefault("timestamp", int(self._clock()))
            self._pending.append(stamped)
            if len(self._pending) >= self.batch_size:
                try:
                    self._ship_pending()
                except ApiError as exc:
                    self._log.warning(
                        "Deferred %d events for %s after a failed send: %s",
                        len(self._pending),
                        self.update,
                        exc,
                    )
        return stamped

    def flush(self) -> int:
        """Ship every pending event; returns how many were sent."""
        with self._lock:
            return self._ship_pending()

    def _ship_pending(self) -> int:
        sent = 0
        while self._pending:
            chunk = self._pending[: self.batch_size]
            batch = EngineEventBatch(events=tuple(chunk))
            self.service.record_engine_events(self.update, batch, self.lease.current())
            del self._pending[: len(chunk)]
            sent += len(chunk)
            self.batches_sent += 1
            self._log.debug(
                "Shipped %d events for %s (through sequence %s).",
                len(chunk),
                self.update,
                chunk[-1]["sequence"],
            )
        return sent


def iter_update_events(
    service: StackServicePort,
    update: UpdateIdentifier,
    continuation_token: Optional[str] = None,
) -> Iterator[Dict[str, Any]]:
    """Yield the update's events in order, following continuation tokens.

    No token reads from the start; a token resumes after that point. The
    stream ends when the service omits a new continuation token.
    """
    token = continuation_token
    while True:
        page = service.get_update_events(update, token)
        for event in page.events:
            yield event
        if page.is_last_page:
            return
        token = page.continuation_token


__all__ = ["EventRecorder", "iter_update_events"]
