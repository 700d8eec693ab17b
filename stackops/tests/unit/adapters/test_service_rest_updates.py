"""Update lifecycle calls of the REST client: lease tokens, checkpoints, events."""

from __future__ import annotations

import pytest

pytest.importorskip("requests")

from stackops.adapters.api_errors import ApiClientError
from stackops.domain.config import ConfigKey, ConfigValue
from stackops.domain.identifiers import StackIdentifier, UpdateIdentifier, UpdateKind
from stackops.domain.models import (
    DeploymentSnapshot,
    EngineEventBatch,
    ProgramInfo,
    UpdateMetadata,
    UpdateOptions,
    UpdateStatus,
)
from stackops.tests.fakes import FakeStackService

STACK = StackIdentifier("acme", "website", "prod")
PROGRAM = ProgramInfo(name="website", runtime="python", main="__main__.py")


@pytest.fixture
def service() -> FakeStackService:
    fake = FakeStackService()
    fake.add_stack("acme", "website", "prod")
    return fake


def _create(client, kind: UpdateKind = UpdateKind.UPDATE, *, dry_run: bool = False) -> UpdateIdentifier:
    config = {ConfigKey("aws", "region"): ConfigValue("us-west-2")}
    result = client.create_update(kind, STACK, PROGRAM, config, UpdateMetadata("ship it"), UpdateOptions(), dry_run)
    return result.update


def test_create_update_sends_program_config_and_options(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client, UpdateKind.PREVIEW, dry_run=True)
    assert update == UpdateIdentifier(STACK, UpdateKind.PREVIEW, "upd-1")
    call = service.calls_to("/prod/preview", "POST")[0]
    assert call.retry_safe is False
    assert call.body["name"] == "website"
    assert call.body["config"] == {"aws:region": {"string": "us-west-2", "secret": False}}
    assert call.body["options"]["dryRun"] is True
    assert call.body["metadata"]["message"] == "ship it"


def test_create_update_rejects_import_kind(service: FakeStackService) -> None:
    with pytest.raises(ValueError):
        _create(service.client(), UpdateKind.IMPORT)
    assert service.calls == []


def test_start_update_returns_lease_token_and_version(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    started = client.start_update(update, {"team": "web"})
    assert started.token == "lease-1"
    assert started.version == 1
    assert client.get_stack(STACK).tags == {"team": "web"}
    call = service.calls_to("/update/upd-1", "POST")[0]
    assert call.retry_safe is False
    assert call.authorization == "token acct-token"


def test_renew_rotates_token_and_old_token_is_rejected(service: FakeStackService) -> None:
    """After renewal, lease-authorized calls with the superseded token fail with 401."""
    client = service.client()
    update = _create(client)
    old = client.start_update(update).token
    new = client.renew_update_lease(update, old, 300)
    assert new != old
    assert service.calls_to("/renew_lease")[0].body == {"token": old, "duration": 300}

    snapshot = DeploymentSnapshot(deployment={"resources": []})
    with pytest.raises(ApiClientError) as exc:
        client.patch_update_checkpoint(update, snapshot, old)
    assert exc.value.status == 401
    client.patch_update_checkpoint(update, snapshot, new)
    assert service.update_record("upd-1").checkpoint == {"resources": []}


def test_checkpoint_writes_are_idempotent_and_last_write_wins(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    token = client.start_update(update).token
    first = DeploymentSnapshot(deployment={"resources": [{"urn": "a"}]})
    second = DeploymentSnapshot(deployment={"resources": [{"urn": "a"}, {"urn": "b"}]})

    client.patch_update_checkpoint(update, first, token)
    client.patch_update_checkpoint(update, first, token)
    assert service.update_record("upd-1").checkpoint == first.deployment

    client.patch_update_checkpoint(update, second, token)
    client.patch_update_checkpoint(update, first, token)
    assert service.update_record("upd-1").checkpoint == first.deployment
    assert client.export_deployment(STACK).deployment == first.deployment


def test_lease_endpoints_use_update_token_and_declared_classification(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    token = client.start_update(update).token
    client.patch_update_checkpoint(update, DeploymentSnapshot(deployment={}), token)
    client.invalidate_update_checkpoint(update, token)
    client.record_engine_events(update, EngineEventBatch(events=({"sequence": 1},)), token)
    client.complete_update(update, UpdateStatus.SUCCEEDED, token)

    patch, invalidate = service.calls_to("/checkpoint", "PATCH")
    assert (patch.retry_safe, patch.gzip_body) == (True, True)
    assert (invalidate.retry_safe, invalidate.gzip_body) == (True, False)
    assert invalidate.body == {"isInvalid": True}
    events = service.calls_to("/events/batch")[0]
    assert (events.retry_safe, events.gzip_body) == (True, True)
    complete = service.calls_to("/complete")[0]
    assert complete.body == {"status": "succeeded"}
    for call in (patch, invalidate, events, complete):
        assert call.authorization == f"update-token {token}"
    assert service.update_record("upd-1").checkpoint_invalid is True


def test_lease_endpoint_requires_token(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    with pytest.raises(ValueError):
        client.complete_update(update, UpdateStatus.FAILED, "")


def test_cancel_and_complete_are_idempotent_server_side(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    client.start_update(update)
    client.cancel_update(update)
    client.cancel_update(update)
    assert service.update_record("upd-1").status == "cancelled"
    assert service.calls_to("/cancel")[0].retry_safe is True


def test_get_update_events_follows_continuation_tokens(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    token = client.start_update(update).token
    client.record_engine_events(
        update,
        EngineEventBatch(events=tuple({"sequence": n} for n in range(1, 11))),
        token,
    )
    first = client.get_update_events(update)
    assert [event["sequence"] for event in first.events] == [1, 2, 3]
    assert first.continuation_token == "3"
    last = client.get_update_events(update, "9")
    assert [event["sequence"] for event in last.events] == [10]
    assert last.is_last_page
    assert service.calls_to("/update/upd-1", "GET")[1].params == {"continuationToken": "9"}


def test_stack_updates_history_after_completion(service: FakeStackService) -> None:
    client = service.client()
    update = _create(client)
    token = client.start_update(update).token
    client.complete_update(update, UpdateStatus.SUCCEEDED, token)
    history = client.get_stack_updates(STACK)
    assert len(history) == 1
    assert history[0].kind is UpdateKind.UPDATE
    assert history[0].result == "succeeded"
    assert client.get_latest_configuration(STACK) == {ConfigKey("aws", "region"): ConfigValue("us-west-2")}
