"""End-to-end update sessions against the in-memory service."""

from __future__ import annotations

import time

import pytest

pytest.importorskip("requests")

from stackops.domain.errors import LeaseExpiredError, SessionStateError, UseCaseError, ValidationError
from stackops.domain.identifiers import StackIdentifier, UpdateKind
from stackops.domain.models import ProgramInfo, UpdateStatus
from stackops.domain.settings import ClientSettings
from stackops.tests.fakes import FakeResponse, FakeStackService
from stackops.usecases.update_session import SessionState, UpdateSession

STACK = StackIdentifier("acme", "website", "prod")
PROGRAM = ProgramInfo(name="website", runtime="python")


class _Clock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def service() -> FakeStackService:
    fake = FakeStackService()
    fake.add_stack("acme", "website", "prod")
    return fake


def _session(service: FakeStackService, **settings_kwargs) -> UpdateSession:
    settings = ClientSettings(**{"lease_duration_s": 300, "event_batch_size": 4, **settings_kwargs})
    return UpdateSession.create(service.client(), UpdateKind.UPDATE, STACK, PROGRAM, settings=settings)


def _wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_create_and_start_enter_running(service: FakeStackService) -> None:
    session = _session(service)
    assert session.state is SessionState.CREATED
    assert session.update.update_id == "upd-1"

    started = session.start({"team": "web"})
    assert session.state is SessionState.RUNNING
    assert started.token == "lease-1"
    assert session.stack_version == 1
    assert session.lease.current() == "lease-1"

    assert session.complete(UpdateStatus.SUCCEEDED) is SessionState.COMPLETED
    assert service.update_record("upd-1").status == "succeeded"
    assert session.lease.revoked


def test_create_failure_is_mapped(service: FakeStackService) -> None:
    service.inject("/prod/update", FakeResponse(409, {"code": 409, "message": "Conflict: update in progress"}))
    with pytest.raises(UseCaseError) as exc:
        _session(service)
    assert exc.value.code == "CONFLICT"


def test_start_with_invalid_tags_leaves_session_created(service: FakeStackService) -> None:
    session = _session(service)
    with pytest.raises(ValidationError):
        session.start({"bad tag!": "x"})
    assert session.state is SessionState.CREATED
    assert service.calls_to("/update/upd-1", "POST") == []
    session.cancel()


def test_start_twice_is_rejected(service: FakeStackService) -> None:
    session = _session(service)
    session.start()
    with pytest.raises(SessionStateError):
        session.start()
    session.cancel()


def test_cancel_from_created(service: FakeStackService) -> None:
    session = _session(service)
    assert session.cancel() is SessionState.CANCELED
    assert service.update_record("upd-1").status == "cancelled"
    assert session.is_terminal


def test_complete_then_cancel_sends_only_completion(service: FakeStackService) -> None:
    session = _session(service)
    session.start()
    assert session.complete(UpdateStatus.FAILED) is SessionState.COMPLETED
    assert session.cancel() is SessionState.COMPLETED
    assert service.calls_to("/cancel") == []
    assert len(service.calls_to("/complete")) == 1
    assert service.update_record("upd-1").status == "failed"


def test_cancel_then_complete_sends_only_cancel(service: FakeStackService) -> None:
    session = _session(service)
    session.start()
    assert session.cancel() is SessionState.CANCELED
    assert session.complete(UpdateStatus.SUCCEEDED) is SessionState.CANCELED
    assert service.calls_to("/complete") == []
    assert len(service.calls_to("/cancel")) == 1


def test_checkpoints_only_in_running_window(service: FakeStackService) -> None:
    session = _session(service)
    with pytest.raises(SessionStateError):
        session.save_checkpoint({"resources": []})
    session.start()
    snapshot = session.save_checkpoint({"resources": [{"urn": "a"}]})
    assert snapshot.version == 3
    assert service.update_record("upd-1").checkpoint == {"resources": [{"urn": "a"}]}
    session.invalidate_checkpoint()
    assert service.update_record("upd-1").checkpoint_invalid is True
    session.complete(UpdateStatus.SUCCEEDED)
    with pytest.raises(SessionStateError):
        session.save_checkpoint({"resources": []})


def test_events_are_batched_and_read_back_in_order(service: FakeStackService) -> None:
    """Ten events with batch size four ship as 4+4 automatically and 2 on completion."""
    session = _session(service)
    session.start()
    for n in range(10):
        session.record_event({"type": "diagnostic", "n": n})
    assert len(service.calls_to("/events/batch")) == 2
    session.complete(UpdateStatus.SUCCEEDED)
    assert len(service.calls_to("/events/batch")) == 3

    events = list(session.iter_events())
    assert [event["n"] for event in events] == list(range(10))
    assert [event["sequence"] for event in events] == list(range(1, 11))


def test_complete_failure_returns_to_running(service: FakeStackService) -> None:
    session = _session(service)
    session.start()
    service.inject("/complete", FakeResponse(500, {"code": 500, "message": "boom"}))
    with pytest.raises(UseCaseError) as exc:
        session.complete(UpdateStatus.SUCCEEDED)
    assert exc.value.code == "SERVER_ERROR"
    assert session.state is SessionState.RUNNING
    assert session.complete(UpdateStatus.SUCCEEDED) is SessionState.COMPLETED


def test_complete_after_local_expiry_fails_session(service: FakeStackService) -> None:
    clock = _Clock()
    settings = ClientSettings(lease_duration_s=300)
    session = UpdateSession.create(service.client(), UpdateKind.UPDATE, STACK, PROGRAM, settings=settings, clock=clock)
    session.start()
    clock.now += 301
    with pytest.raises(LeaseExpiredError):
        session.complete(UpdateStatus.SUCCEEDED)
    assert session.state is SessionState.FAILED
    assert service.calls_to("/complete") == []


def test_lease_loss_fails_session_and_blocks_writes(service: FakeStackService) -> None:
    """A rejected renewal fails the session; later writes surface LEASE_EXPIRED."""
    session = _session(service, lease_duration_s=2, renew_interval_s=0.05)
    service.reject_renewals = True
    session.start()
    assert _wait_for(lambda: session.state is SessionState.FAILED)

    with pytest.raises(UseCaseError) as exc:
        session.save_checkpoint({"resources": []})
    assert exc.value.code == "LEASE_EXPIRED"
    with pytest.raises(UseCaseError) as exc:
        session.record_event({"type": "diagnostic"})
    assert exc.value.code == "LEASE_EXPIRED"
    assert session.complete(UpdateStatus.SUCCEEDED) is SessionState.FAILED
    assert session.failure is not None and session.failure.code == "LEASE_EXPIRED"
    assert service.calls_to("/checkpoint") == []


def test_renewal_keeps_lease_fresh_while_running(service: FakeStackService) -> None:
    session = _session(service, lease_duration_s=2, renew_interval_s=0.05)
    session.start()
    assert _wait_for(lambda: len(service.calls_to("/renew_lease")) >= 2)
    assert session.lease.current() != "lease-1"
    assert session.state is SessionState.RUNNING
    assert session.cancel() is SessionState.CANCELED
    renewals = len(service.calls_to("/renew_lease"))
    time.sleep(0.2)
    assert len(service.calls_to("/renew_lease")) == renewals


def test_failed_cancel_can_be_retried(service: FakeStackService) -> None:
    """A rejected cancel leaves the session running with a live lease."""
    session = _session(service)
    session.start()
    service.inject("/cancel", FakeResponse(503, {"code": 503, "message": "unavailable"}))
    with pytest.raises(UseCaseError) as exc:
        session.cancel()
    assert exc.value.code == "SERVER_ERROR"
    assert session.state is SessionState.RUNNING
    assert session.lease.current() == "lease-1"
    assert service.update_record("upd-1").status == "running"

    assert session.cancel() is SessionState.CANCELED
    assert len(service.calls_to("/cancel")) == 2
    assert service.update_record("upd-1").status == "cancelled"
    assert session.lease.revoked


def test_failed_cancel_before_start_returns_to_created(service: FakeStackService) -> None:
    session = _session(service)
    service.inject("/cancel", FakeResponse(500, {"code": 500, "message": "boom"}))
    with pytest.raises(UseCaseError):
        session.cancel()
    assert session.state is SessionState.CREATED
    assert session.cancel() is SessionState.CANCELED
