from __future__ import annotations
from typing import List, Mapping, Optional, Protocol

from .config import ConfigMap
from .identifiers import StackIdentifier, UpdateIdentifier, UpdateKind
from .models import (
    CreateUpdateResult,
    DeploymentSnapshot,
    EngineEventBatch,
    ListStacksFilter,
    ProgramInfo,
    Stack,
    StackSummary,
    StartUpdateResult,
    UpdateInfo,
    UpdateMetadata,
    UpdateOptions,
    UpdateResults,
    UpdateStatus,
)

StackTags = Mapping[str, str]


# ---- Ports (Hexagonal boundaries) ----
class StackServicePort(Protocol):
    """Stack, deployment, and update-lifecycle calls against the service.

    Implementations raise ``stackops.adapters.api_errors.ApiError`` subclasses
    for transport and backend failures, and the distinguished domain errors
    (``NoPreviousDeploymentError``, ``StackHasResourcesError``,
    ``ValidationError``) where those conditions are detected.
    """

    # stacks
    def get_account_name(self) -> str: ...
    def list_stacks(self, filter: Optional[ListStacksFilter] = None) -> List[StackSummary]: ...
    def create_stack(self, stack: StackIdentifier, tags: Optional[StackTags] = None) -> Stack: ...
    def get_stack(self, stack: StackIdentifier) -> Stack: ...
    def delete_stack(self, stack: StackIdentifier, force: bool = False) -> None: ...
    def rename_stack(self, stack: StackIdentifier, new_name: str) -> None: ...
    def update_stack_tags(self, stack: StackIdentifier, tags: StackTags) -> None: ...
    def get_stack_updates(self, stack: StackIdentifier) -> List[UpdateInfo]: ...
    def get_latest_configuration(self, stack: StackIdentifier) -> ConfigMap: ...
    def export_deployment(self, stack: StackIdentifier) -> DeploymentSnapshot: ...
    def import_deployment(
        self, stack: StackIdentifier, snapshot: DeploymentSnapshot
    ) -> UpdateIdentifier: ...
    def encrypt_value(self, stack: StackIdentifier, plaintext: bytes) -> bytes: ...
    def decrypt_value(self, stack: StackIdentifier, ciphertext: bytes) -> bytes: ...

    # update lifecycle
    def create_update(
        self,
        kind: UpdateKind,
        stack: StackIdentifier,
        program: ProgramInfo,
        config: ConfigMap,
        metadata: UpdateMetadata,
        options: UpdateOptions,
        dry_run: bool,
    ) -> CreateUpdateResult: ...
    def start_update(self, update: UpdateIdentifier, tags: Optional[StackTags] = None) -> StartUpdateResult: ...
    def renew_update_lease(self, update: UpdateIdentifier, token: str, duration_s: int) -> str: ...
    def patch_update_checkpoint(
        self, update: UpdateIdentifier, snapshot: DeploymentSnapshot, token: str
    ) -> None: ...
    def invalidate_update_checkpoint(self, update: UpdateIdentifier, token: str) -> None: ...
    def cancel_update(self, update: UpdateIdentifier) -> None: ...
    def complete_update(self, update: UpdateIdentifier, status: UpdateStatus, token: str) -> None: ...
    def record_engine_events(self, update: UpdateIdentifier, batch: EngineEventBatch, token: str) -> None: ...
    def get_update_events(
        self, update: UpdateIdentifier, continuation_token: Optional[str] = None
    ) -> UpdateResults: ...


class ConfirmPort(Protocol):
    """Interactive yes/no capability; raises to abort the surrounding flow."""

    def confirm(self, prompt: str, *, default: bool = False) -> bool: ...

