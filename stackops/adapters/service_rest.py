"""REST adapter implementing the stack service port."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Mapping, Optional

import requests

from stackops.adapters import endpoints
from stackops.adapters.api_errors import (
    ApiClientError,
    ApiError,
    ApiServerError,
    build_error_message,
    extract_error_code,
    extract_error_hint,
    parse_error_payload,
)
from stackops.adapters.endpoints import AuthScope, Endpoint
from stackops.adapters.http_client import (
    HttpConfig,
    RetryingSession,
    account_authorization,
    lease_authorization,
)
from stackops.domain.config import ConfigMap, config_from_wire, config_to_wire
from stackops.domain.errors import NoPreviousDeploymentError, StackHasResourcesError
from stackops.domain.identifiers import StackIdentifier, UpdateIdentifier, UpdateKind
from stackops.domain.models import (
    CreateUpdateResult,
    DeploymentSnapshot,
    EngineEventBatch,
    ListStacksFilter,
    ProgramInfo,
    RequiredPolicy,
    Stack,
    StackSummary,
    StartUpdateResult,
    UpdateInfo,
    UpdateMetadata,
    UpdateOptions,
    UpdateResults,
    UpdateStatus,
)
from stackops.domain.ports import StackServicePort, StackTags
from stackops.domain.settings import ClientSettings
from stackops.domain.validation import (
    validate_stack_name,
    validate_stack_properties,
    validate_stack_tags,
)

STACK_HAS_RESOURCES_CODE = "stack_has_resources"
_STACK_HAS_RESOURCES_MESSAGE = "stack still contains resources"
_CREATABLE_KINDS = (UpdateKind.UPDATE, UpdateKind.PREVIEW, UpdateKind.REFRESH, UpdateKind.DESTROY)


class ServiceRestClient(StackServicePort):
    """HTTP adapter for the ``/api/user*`` and ``/api/stacks*`` endpoints.

    Endpoints are classified in ``stackops.adapters.endpoints``; that table
    decides retry safety, the authorizing credential, and gzip compression
    for every call made here.
    """

    def __init__(
        self,
        api_url: str,
        access_token: str,
        *,
        request_timeout_s: int = 30,
        retries: int = 3,
        backoff_s: float = 0.5,
        backoff_max_s: float = 8.0,
    ) -> None:
        if not api_url:
            raise ValueError("ServiceRestClient requires an API URL")
        self._log = logging.getLogger(__name__)
        self.api_url = api_url.rstrip("/")
        self.access_token = access_token
        self.cfg = HttpConfig(
            request_timeout_s=request_timeout_s,
            retries=retries,
            backoff_s=backoff_s,
            backoff_max_s=backoff_max_s,
        )
        self.session = RetryingSession(self.cfg)
        self._account_name: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: ClientSettings) -> "ServiceRestClient":
        return cls(
            settings.api_url,
            settings.access_token,
            request_timeout_s=settings.request_timeout_s,
            retries=settings.retries,
            backoff_s=settings.retry_backoff_s,
            backoff_max_s=settings.retry_backoff_max_s,
        )

    # ---------- Stacks ----------

    def get_account_name(self) -> str:
        """Return the user implied by the access token (cached after the first call)."""
        if self._account_name is None:
            payload = self._call(endpoints.GET_ACCOUNT, "/api/user")
            login = str((payload or {}).get("githubLogin") or "").strip()
            if not login:
                raise ApiError("unexpected response from server", context=endpoints.GET_ACCOUNT.name)
            self._account_name = login
        return self._account_name

    def list_stacks(self, filter: Optional[ListStacksFilter] = None) -> List[StackSummary]:
        params = (filter or ListStacksFilter()).to_params()
        payload = self._call(endpoints.LIST_STACKS, "/api/user/stacks", params=params or None)
        stacks = (payload or {}).get("stacks") or []
        return [StackSummary.from_payload(item) for item in stacks]

    def create_stack(self, stack: StackIdentifier, tags: Optional[StackTags] = None) -> Stack:
        validate_stack_properties(stack.stack, tags)
        body = {"stackName": stack.stack, "tags": dict(tags or {})}
        self._call(endpoints.CREATE_STACK, f"/api/stacks/{stack.owner}/{stack.project}", body=body)
        self._log.info("Created stack %s.", stack)
        return Stack(identifier=stack, tags=dict(tags or {}))

    def get_stack(self, stack: StackIdentifier) -> Stack:
        payload = self._call(endpoints.GET_STACK, self.stack_path(stack))
        return Stack.from_payload(self._require_object(payload, endpoints.GET_STACK))

    def delete_stack(self, stack: StackIdentifier, force: bool = False) -> None:
        """Delete ``stack``; without ``force`` a stack with resources raises ``StackHasResourcesError``."""
        params = {"force": "true" if force else "false"}
        try:
            self._call(endpoints.DELETE_STACK, self.stack_path(stack), params=params)
        except ApiClientError as exc:
            if self._is_stack_has_resources(exc):
                raise StackHasResourcesError(stack, exc.detail or exc.code) from exc
            raise
        self._log.info("Deleted stack %s (force=%s).", stack, force)

    def rename_stack(self, stack: StackIdentifier, new_name: str) -> None:
        validate_stack_name(new_name)
        self._call(endpoints.RENAME_STACK, self.stack_path(stack, "rename"), body={"newName": new_name})

    def update_stack_tags(self, stack: StackIdentifier, tags: StackTags) -> None:
        """Replace all of the stack's tags."""
        validate_stack_tags(tags)
        self._call(endpoints.UPDATE_STACK_TAGS, self.stack_path(stack, "tags"), body=dict(tags))

    def get_stack_updates(self, stack: StackIdentifier) -> List[UpdateInfo]:
        payload = self._call(endpoints.GET_STACK_UPDATES, self.stack_path(stack, "updates"))
        return [UpdateInfo.from_payload(item) for item in (payload or {}).get("updates") or []]

    def get_latest_configuration(self, stack: StackIdentifier) -> ConfigMap:
        """Return the configuration of the most recent update.

        Raises:
            NoPreviousDeploymentError: The stack has never been updated.
        """
        try:
            payload = self._call(endpoints.GET_LATEST_UPDATE, self.stack_path(stack, "updates", "latest"))
        except ApiClientError as exc:
            if exc.status == 404:
                raise NoPreviousDeploymentError(stack) from exc
            raise
        info = (payload or {}).get("info") or {}
        return config_from_wire(info.get("config") if isinstance(info, Mapping) else None)

    def export_deployment(self, stack: StackIdentifier) -> DeploymentSnapshot:
        payload = self._call(endpoints.EXPORT_DEPLOYMENT, self.stack_path(stack, "export"))
        return DeploymentSnapshot.from_payload(self._require_object(payload, endpoints.EXPORT_DEPLOYMENT))

    def import_deployment(self, stack: StackIdentifier, snapshot: DeploymentSnapshot) -> UpdateIdentifier:
        payload = self._call(endpoints.IMPORT_DEPLOYMENT, self.stack_path(stack, "import"), body=snapshot.to_wire())
        update_id = str((payload or {}).get("updateId") or "").strip()
        if not update_id:
            raise ApiError("Invalid import payload: updateId missing", context=endpoints.IMPORT_DEPLOYMENT.name)
        return UpdateIdentifier(stack=stack, kind=UpdateKind.UPDATE, update_id=update_id)

    def encrypt_value(self, stack: StackIdentifier, plaintext: bytes) -> bytes:
        body = {"plaintext": base64.b64encode(plaintext).decode("ascii")}
        payload = self._call(endpoints.ENCRYPT_VALUE, self.stack_path(stack, "encrypt"), body=body)
        return base64.b64decode(str((payload or {}).get("ciphertext") or ""))

    def decrypt_value(self, stack: StackIdentifier, ciphertext: bytes) -> bytes:
        body = {"ciphertext": base64.b64encode(ciphertext).decode("ascii")}
        payload = self._call(endpoints.DECRYPT_VALUE, self.stack_path(stack, "decrypt"), body=body)
        return base64.b64decode(str((payload or {}).get("plaintext") or ""))

    # ---------- Update lifecycle ----------

    def create_update(
        self,
        kind: UpdateKind,
        stack: StackIdentifier,
        program: ProgramInfo,
        config: ConfigMap,
        metadata: UpdateMetadata,
        options: UpdateOptions,
        dry_run: bool,
    ) -> CreateUpdateResult:
        """Create an update of ``kind``; returns its identifier and required policies."""
        if kind not in _CREATABLE_KINDS:
            raise ValueError(f"Cannot create an update of kind {kind.value!r}")
        body = {
            "name": program.name,
            "runtime": program.runtime,
            "main": program.main,
            "description": program.description,
            "config": config_to_wire(config),
            "options": options.to_wire(dry_run=dry_run),
            "metadata": metadata.to_wire(),
        }
        payload = self._require_object(
            self._call(endpoints.CREATE_UPDATE, self.stack_path(stack, kind.value), body=body),
            endpoints.CREATE_UPDATE,
        )
        update_id = str(payload.get("updateID") or "").strip()
        if not update_id:
            raise ApiError("Invalid update payload: updateID missing", context=endpoints.CREATE_UPDATE.name)
        policies = tuple(RequiredPolicy.from_payload(item) for item in payload.get("requiredPolicies") or [])
        update = UpdateIdentifier(stack=stack, kind=kind, update_id=update_id)
        self._log.info("Created %s %s (%d required policies).", kind.value, update, len(policies))
        return CreateUpdateResult(update=update, required_policies=policies)

    def start_update(self, update: UpdateIdentifier, tags: Optional[StackTags] = None) -> StartUpdateResult:
        """Start ``update``, replacing the stack's tags; returns the lease token and new version."""
        validate_stack_properties(update.stack.stack, tags)
        payload = self._require_object(
            self._call(endpoints.START_UPDATE, self.update_path(update), body={"tags": dict(tags or {})}),
            endpoints.START_UPDATE,
        )
        result = StartUpdateResult(version=int(payload.get("version") or 0), token=str(payload.get("token") or ""))
        self._log.info("Started %s at stack version %d.", update, result.version)
        return result

    def renew_update_lease(self, update: UpdateIdentifier, token: str, duration_s: int) -> str:
        body = {"token": token, "duration": int(duration_s)}
        payload = self._call(endpoints.RENEW_LEASE, self.update_path(update, "renew_lease"), body=body)
        renewed = str((payload or {}).get("token") or "")
        if not renewed:
            raise ApiError("Invalid renew_lease payload: token missing", context=endpoints.RENEW_LEASE.name)
        return renewed

    def patch_update_checkpoint(self, update: UpdateIdentifier, snapshot: DeploymentSnapshot, token: str) -> None:
        self._call(
            endpoints.PATCH_CHECKPOINT,
            self.update_path(update, "checkpoint"),
            body=snapshot.to_wire(),
            lease_token=token,
        )

    def invalidate_update_checkpoint(self, update: UpdateIdentifier, token: str) -> None:
        self._call(
            endpoints.INVALIDATE_CHECKPOINT,
            self.update_path(update, "checkpoint"),
            body={"isInvalid": True},
            lease_token=token,
        )

    def cancel_update(self, update: UpdateIdentifier) -> None:
        self._call(endpoints.CANCEL_UPDATE, self.update_path(update, "cancel"))
        self._log.info("Canceled %s.", update)

    def complete_update(self, update: UpdateIdentifier, status: UpdateStatus, token: str) -> None:
        self._call(
            endpoints.COMPLETE_UPDATE,
            self.update_path(update, "complete"),
            body={"status": status.value},
            lease_token=token,
        )
        self._log.info("Completed %s with status %s.", update, status.value)

    def record_engine_events(self, update: UpdateIdentifier, batch: EngineEventBatch, token: str) -> None:
        self._call(
            endpoints.RECORD_EVENTS,
            self.update_path(update, "events", "batch"),
            body=batch.to_wire(),
            lease_token=token,
        )

    def get_update_events(self, update: UpdateIdentifier, continuation_token: Optional[str] = None) -> UpdateResults:
        params = {"continuationToken": continuation_token} if continuation_token else None
        payload = self._call(endpoints.GET_UPDATE_EVENTS, self.update_path(update), params=params)
        return UpdateResults.from_payload(self._require_object(payload, endpoints.GET_UPDATE_EVENTS))

    # ------------------------------------------------------------------
    @staticmethod
    def stack_path(stack: StackIdentifier, *components: str) -> str:
        """API path for ``stack`` with ``components`` appended."""
        parts = ["/api/stacks", stack.owner, stack.project, stack.stack, *components]
        return "/".join(parts)

    @classmethod
    def update_path(cls, update: UpdateIdentifier, *components: str) -> str:
        """API path for ``update``; per-update calls always use the ``update`` segment."""
        return cls.stack_path(update.stack, UpdateKind.UPDATE.value, update.update_id, *components)

    def _call(
        self,
        endpoint: Endpoint,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        lease_token: Optional[str] = None,
    ) -> Any:
        """Issue ``endpoint`` and return its decoded JSON body (``None`` when empty)."""
        if endpoint.auth is AuthScope.LEASE:
            if not lease_token:
                raise ValueError(f"{endpoint.name} requires an update lease token")
            authorization = lease_authorization(lease_token)
        else:
            authorization = account_authorization(self.access_token)
        resp = self.session.request(
            endpoint.method,
            f"{self.api_url}{path}",
            params=params,
            json_body=body,
            authorization=authorization,
            retry_safe=endpoint.retry_safe,
            gzip_body=endpoint.gzip,
            timeout=self.cfg.request_timeout_s,
        )
        self._ensure_ok(resp, endpoint.name)
        return self._json_body(resp, endpoint.name)

    @staticmethod
    def _is_stack_has_resources(exc: ApiClientError) -> bool:
        if exc.code == STACK_HAS_RESOURCES_CODE:
            return True
        detail = (exc.detail or "").lower()
        return exc.status == 400 and _STACK_HAS_RESOURCES_MESSAGE in detail

    @staticmethod
    def _ensure_ok(resp: requests.Response, ctx: str) -> None:
        """Raise typed adapter errors for non-2xx responses."""
        if 200 <= resp.status_code < 300:
            return
        status = resp.status_code
        payload = parse_error_payload(resp)
        message = build_error_message(ctx, status, payload)
        code = extract_error_code(payload)
        hint = extract_error_hint(payload)
        if 400 <= status < 500:
            raise ApiClientError(
                message,
                status=status,
                code=code,
                hint=hint,
                payload=payload,
                context=ctx,
            )
        if 500 <= status < 600:
            raise ApiServerError(
                message,
                status=status,
                payload=payload,
                context=ctx,
            )
        raise ApiError(message, status=status, payload=payload, context=ctx)

    @staticmethod
    def _json_body(resp: requests.Response, ctx: str) -> Any:
        """Parse response JSON; an empty body decodes to ``None``."""
        text = getattr(resp, "text", "")
        if resp.status_code == 204 or not text:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(f"{ctx}: invalid JSON response: {text[:400]}", context=ctx) from exc

    @staticmethod
    def _require_object(payload: Any, endpoint: Endpoint) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            raise ApiError(
                f"{endpoint.name}: invalid JSON response shape: expected object",
                context=endpoint.name,
            )
        return payload


__all__ = ["ServiceRestClient", "STACK_HAS_RESOURCES_CODE"]
