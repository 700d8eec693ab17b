"""State machine driving one remote update from creation to a terminal state.

Lifecycle::

    created -> started -> running -> completing -> completed
                                  -> canceling  -> canceled
    (lease lost)                                -> failed

``UpdateSession.create`` registers the update with the service. ``start``
acquires the lease, launches the renewal loop, and opens the running window
in which checkpoints and events are written. ``cancel`` and ``complete`` are
single-fire: once the session is terminal (or a terminal call is in flight)
further terminal calls are logged no-ops that return the current state. A
terminal call the service rejects puts the session back where it was, so the
call can be retried.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from stackops.domain.config import ConfigMap
from stackops.domain.errors import LeaseExpiredError, SessionStateError, UseCaseError
from stackops.domain.identifiers import StackIdentifier, UpdateIdentifier, UpdateKind
from stackops.domain.lease import Clock, LeaseToken
from stackops.domain.models import (
    DeploymentSnapshot,
    ProgramInfo,
    RequiredPolicy,
    StartUpdateResult,
    UpdateMetadata,
    UpdateOptions,
    UpdateStatus,
)
from stackops.domain.ports import StackServicePort, StackTags
from stackops.domain.settings import ClientSettings
from stackops.domain.validation import validate_stack_properties
from stackops.usecases.checkpoint_writer import CheckpointWriter
from stackops.usecases.error_mapping import map_api_error
from stackops.usecases.event_recorder import EventRecorder, iter_update_events
from stackops.usecases.lease_renewal import LeaseRenewalLoop


class SessionState(str, Enum):
    CREATED = "created"
    STARTED = "started"
    RUNNING = "running"
    COMPLETING = "completing"
    COMPLETED = "completed"
    CANCELING = "canceling"
    CANCELED = "canceled"
    FAILED = "failed"


TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.CANCELED, SessionState.FAILED})
_SETTLING_STATES = frozenset({SessionState.COMPLETING, SessionState.CANCELING})


class UpdateSession:
    """Own the lease, checkpoints, and events of one update.

    The service is injected; the session never reaches for a shared
    backend. Checkpoint writes are serialized here so at most one is in
    flight per update.
    """

    def __init__(
        self,
        service: StackServicePort,
        update: UpdateIdentifier,
        *,
        required_policies: Tuple[RequiredPolicy, ...] = (),
        settings: Optional[ClientSettings] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self._log = logging.getLogger(__name__)
        self.service = service
        self.update = update
        self.required_policies = tuple(required_policies)
        self.settings = settings or ClientSettings()
        self._clock = clock
        self._state = SessionState.CREATED
        self._state_lock = threading.RLock()
        self._checkpoint_lock = threading.Lock()
        self.lease: Optional[LeaseToken] = None
        self.stack_version: Optional[int] = None
        self.failure: Optional[UseCaseError] = None
        self._renewal: Optional[LeaseRenewalLoop] = None
        self._checkpoints: Optional[CheckpointWriter] = None
        self._events: Optional[EventRecorder] = None

    @classmethod
    def create(
        cls,
        service: StackServicePort,
        kind: UpdateKind,
        stack: StackIdentifier,
        program: ProgramInfo,
        config: Optional[ConfigMap] = None,
        *,
        metadata: Optional[UpdateMetadata] = None,
        options: Optional[UpdateOptions] = None,
        dry_run: bool = False,
        settings: Optional[ClientSettings] = None,
        clock: Clock = time.monotonic,
    ) -> "UpdateSession":
        """Register a new update with the service and return its session in ``created``.

        Required policies are exposed on ``required_policies``; a caller that
        cannot satisfy them should ``cancel()`` instead of starting.
        """
        try:
            result = service.create_update(
                kind,
                stack,
                program,
                dict(config or {}),
                metadata or UpdateMetadata(),
                options or UpdateOptions(),
                dry_run,
            )
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="UPDATE_CREATE_FAILED",
                default_message="Failed to create update.",
            ) from exc
        session = cls(
            service,
            result.update,
            required_policies=result.required_policies,
            settings=settings,
            clock=clock,
        )
        session._log.info("Update %s created.", result.update)
        return session

    @property
    def state(self) -> SessionState:
        with self._state_lock:
            return self._state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    # ---------- Start ----------

    def start(self, tags: Optional[StackTags] = None) -> StartUpdateResult:
        """Acquire the lease (replacing the stack's tags) and enter ``running``.

        Raises:
            ValidationError: ``tags`` are malformed; the session stays ``created``.
            SessionStateError: The session was already started or terminated.
        """
        with self._state_lock:
            if self._state is not SessionState.CREATED:
                raise SessionStateError(f"Cannot start update {self.update} in state {self._state.value}.")
        validate_stack_properties(self.update.stack.stack, tags)
        try:
            result = self.service.start_update(self.update, tags)
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="UPDATE_START_FAILED",
                default_message="Failed to start update.",
            ) from exc
        if not result.token:
            raise UseCaseError("UPDATE_START_FAILED", f"Service returned no lease token for {self.update}.")

        lease = LeaseToken(result.token, self.settings.lease_duration_s, clock=self._clock)
        with self._state_lock:
            self.lease = lease
            self.stack_version = result.version
            self._state = SessionState.STARTED
        self._checkpoints = CheckpointWriter(self.service, self.update, lease)
        self._events = EventRecorder(
            self.service,
            self.update,
            lease,
            batch_size=self.settings.event_batch_size,
        )
        self._renewal = LeaseRenewalLoop(
            self.service,
            self.update,
            lease,
            duration_s=self.settings.lease_duration_s,
            interval_s=self.settings.effective_renew_interval_s(),
            on_failure=self._on_lease_lost,
        )
        self._renewal.start()
        with self._state_lock:
            if self._state is SessionState.STARTED:
                self._state = SessionState.RUNNING
        self._log.info("Update %s running (stack version %d).", self.update, result.version)
        return result

    # ---------- Running window ----------

    def save_checkpoint(self, deployment: Mapping[str, Any]) -> DeploymentSnapshot:
        """Persist the full ``deployment`` as the update's checkpoint."""
        with self._checkpoint_lock:
            writer = self._require_running("save a checkpoint", self._checkpoints)
            try:
                return writer.write(deployment)
            except Exception as exc:
                raise map_api_error(
                    exc,
                    default_code="CHECKPOINT_FAILED",
                    default_message="Failed to save checkpoint.",
                ) from exc

    def invalidate_checkpoint(self) -> None:
        with self._checkpoint_lock:
            writer = self._require_running("invalidate the checkpoint", self._checkpoints)
            try:
                writer.invalidate()
            except Exception as exc:
                raise map_api_error(
                    exc,
                    default_code="CHECKPOINT_FAILED",
                    default_message="Failed to invalidate checkpoint.",
                ) from exc

    def record_event(self, event: Mapping[str, Any]) -> Dict[str, Any]:
        """Queue ``event``; batches ship automatically once full."""
        recorder = self._require_running("record events", self._events)
        try:
            return recorder.record(event)
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="EVENTS_FAILED",
                default_message="Failed to record engine events.",
            ) from exc

    def flush_events(self) -> int:
        recorder = self._require_running("record events", self._events)
        try:
            return recorder.flush()
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="EVENTS_FAILED",
                default_message="Failed to record engine events.",
            ) from exc

    def iter_events(self, continuation_token: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """Read the update's event stream back from the service."""
        return iter_update_events(self.service, self.update, continuation_token)

    # ---------- Terminal transitions ----------

    def cancel(self) -> SessionState:
        """Abort the update. A no-op once the session is terminal or settling.

        The lease keeps renewing until the service accepts the cancel. If the
        cancel call fails, the session returns to its previous state so the
        caller may retry ``cancel``.
        """
        with self._state_lock:
            if self._state in TERMINAL_STATES or self._state in _SETTLING_STATES:
                self._log.info("Cancel of %s ignored; session is %s.", self.update, self._state.value)
                return self._state
            previous = self._state
            self._state = SessionState.CANCELING
        try:
            self.service.cancel_update(self.update)
        except Exception as exc:
            mapped = map_api_error(
                exc,
                default_code="UPDATE_CANCEL_FAILED",
                default_message="Failed to cancel update.",
            )
            self._revert_from(SessionState.CANCELING, previous)
            raise mapped from exc
        return self._finish(SessionState.CANCELED)

    def complete(self, status: UpdateStatus) -> SessionState:
        """Flush pending events and report the final ``status``.

        A no-op once the session is terminal or settling. If the completion
        call fails for a reason other than lease loss, the session returns to
        ``running`` so the caller may retry ``complete`` or ``cancel``.
        """
        with self._state_lock:
            if self._state in TERMINAL_STATES or self._state in _SETTLING_STATES:
                self._log.info("Complete of %s ignored; session is %s.", self.update, self._state.value)
                return self._state
            if self._state is not SessionState.RUNNING:
                raise SessionStateError(f"Cannot complete update {self.update} in state {self._state.value}.")
            self._state = SessionState.COMPLETING
        try:
            self._events.flush()
            self.service.complete_update(self.update, status, self.lease.current())
        except LeaseExpiredError as exc:
            self._finish(SessionState.FAILED, exc)
            raise
        except Exception as exc:
            mapped = map_api_error(
                exc,
                default_code="UPDATE_COMPLETE_FAILED",
                default_message="Failed to complete update.",
            )
            self._revert_from(SessionState.COMPLETING, SessionState.RUNNING)
            raise mapped from exc
        return self._finish(SessionState.COMPLETED)

    # ------------------------------------------------------------------
    def _require_running(self, action: str, component: Any) -> Any:
        with self._state_lock:
            if self._state is SessionState.FAILED and self.failure is not None:
                raise self.failure
            if self._state is not SessionState.RUNNING or component is None:
                raise SessionStateError(f"Cannot {action} for {self.update} in state {self._state.value}.")
        return component

    def _revert_from(self, settling: SessionState, previous: SessionState) -> None:
        """Undo a settling transition whose service call failed.

        A lease lost while the call was in flight fails the session instead.
        """
        lost = self.lease.failure if self.lease is not None else None
        with self._state_lock:
            if self._state is not settling:
                return
            if lost is None:
                self._state = previous
                return
        self._finish(SessionState.FAILED, lost)

    def _on_lease_lost(self, error: LeaseExpiredError) -> None:
        with self._state_lock:
            if self._state in (SessionState.STARTED, SessionState.RUNNING):
                self._state = SessionState.FAILED
                self.failure = error
        self._log.error("Update %s lost its lease: %s", self.update, error.message)

    def _stop_renewal(self) -> None:
        if self._renewal is not None:
            self._renewal.stop()

    def _finish(self, state: SessionState, failure: Optional[UseCaseError] = None) -> SessionState:
        self._stop_renewal()
        if self.lease is not None:
            self.lease.revoke()
        with self._state_lock:
            self._state = state
            if failure is not None:
                self.failure = failure
        self._log.info("Update %s %s.", self.update, state.value)
        return state


__all__ = ["SessionState", "TERMINAL_STATES", "UpdateSession"]
