"""Domain DTOs for stacks, update requests, checkpoints, and event streams."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .config import ConfigMap, config_from_wire
from .identifiers import StackIdentifier, UpdateIdentifier, UpdateKind


CHECKPOINT_SCHEMA_VERSION = 3


class UpdateStatus(str, Enum):
    """Final status reported when completing an update."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Stack:
    """Stack record returned by the service."""

    identifier: StackIdentifier
    tags: Dict[str, str] = field(default_factory=dict)
    version: int = 0
    active_update: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Stack":
        """Build typed stack from adapter payload."""
        identifier = StackIdentifier(
            owner=str(payload.get("orgName") or "").strip(),
            project=str(payload.get("projectName") or "").strip(),
            stack=str(payload.get("stackName") or "").strip(),
        )
        tags_raw = payload.get("tags") if isinstance(payload.get("tags"), Mapping) else {}
        return cls(
            identifier=identifier,
            tags={str(k): str(v) for k, v in tags_raw.items()},
            version=int(payload.get("version") or 0),
            active_update=str(payload.get("activeUpdate") or ""),
        )


@dataclass(frozen=True)
class StackSummary:
    """Row of the stack listing."""

    identifier: StackIdentifier
    last_update: Optional[int] = None
    resource_count: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StackSummary":
        identifier = StackIdentifier(
            owner=str(payload.get("orgName") or "").strip(),
            project=str(payload.get("projectName") or "").strip(),
            stack=str(payload.get("stackName") or "").strip(),
        )
        last_update = payload.get("lastUpdate")
        resource_count = payload.get("resourceCount")
        return cls(
            identifier=identifier,
            last_update=int(last_update) if last_update is not None else None,
            resource_count=int(resource_count) if resource_count is not None else None,
        )


@dataclass(frozen=True)
class ListStacksFilter:
    """Optional filters applied when listing stacks."""

    project: Optional[str] = None
    organization: Optional[str] = None
    tag_name: Optional[str] = None
    tag_value: Optional[str] = None

    def to_params(self) -> Dict[str, str]:
        params = {
            "project": self.project,
            "organization": self.organization,
            "tagName": self.tag_name,
            "tagValue": self.tag_value,
        }
        return {key: value for key, value in params.items() if value is not None}


@dataclass(frozen=True)
class RequiredPolicy:
    """Policy pack the update must satisfy; passed through to the caller."""

    name: str
    version: int
    display_name: str = ""
    pack_location: str = ""
    config: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "RequiredPolicy":
        name = str(payload.get("name") or "").strip()
        if not name:
            raise ValueError("Missing name in required policy.")
        config_raw = payload.get("config") if isinstance(payload.get("config"), Mapping) else {}
        return cls(
            name=name,
            version=int(payload.get("version") or 0),
            display_name=str(payload.get("displayName") or ""),
            pack_location=str(payload.get("packLocation") or ""),
            config=dict(config_raw),
        )


@dataclass(frozen=True)
class ProgramInfo:
    """Program metadata sent when creating an update."""

    name: str
    runtime: str
    main: str = ""
    description: str = ""


@dataclass(frozen=True)
class UpdateOptions:
    """Engine options forwarded with the update request."""

    local_policy_pack_paths: Tuple[str, ...] = ()
    parallel: int = 0

    def to_wire(self, *, dry_run: bool) -> Dict[str, Any]:
        return {
            "localPolicyPackPaths": list(self.local_policy_pack_paths),
            "color": "raw",
            "dryRun": dry_run,
            "parallel": self.parallel,
            "showConfig": False,
            "showReplacementSteps": False,
            "showSames": False,
        }


@dataclass(frozen=True)
class UpdateMetadata:
    """Free-form message and environment attached to an update."""

    message: str = ""
    environment: Dict[str, str] = field(default_factory=dict)

    def to_wire(self) -> Dict[str, Any]:
        return {"message": self.message, "environment": dict(self.environment)}


@dataclass(frozen=True)
class CreateUpdateResult:
    """Identifier and policy requirements returned by update creation."""

    update: UpdateIdentifier
    required_policies: Tuple[RequiredPolicy, ...] = ()


@dataclass(frozen=True)
class StartUpdateResult:
    """Lease token and new stack version returned by starting an update."""

    version: int
    token: str


@dataclass(frozen=True)
class DeploymentSnapshot:
    """Full serialized deployment state plus its schema version."""

    deployment: Dict[str, Any]
    version: int = CHECKPOINT_SCHEMA_VERSION

    def to_wire(self) -> Dict[str, Any]:
        return {"version": self.version, "deployment": self.deployment}

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "DeploymentSnapshot":
        deployment = payload.get("deployment")
        if not isinstance(deployment, Mapping):
            raise ValueError("Missing deployment in snapshot payload.")
        return cls(deployment=dict(deployment), version=int(payload.get("version") or 0))


@dataclass(frozen=True)
class EngineEventBatch:
    """Ordered events shipped in one request."""

    events: Tuple[Dict[str, Any], ...]

    def to_wire(self) -> Dict[str, Any]:
        return {"events": list(self.events)}


@dataclass(frozen=True)
class UpdateResults:
    """One page of an update's event stream."""

    status: str
    events: Tuple[Dict[str, Any], ...] = ()
    continuation_token: Optional[str] = None

    @property
    def is_last_page(self) -> bool:
        return not self.continuation_token

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "UpdateResults":
        events_raw = payload.get("events") or []
        if not isinstance(events_raw, list):
            raise ValueError("Invalid events in update results payload.")
        token = payload.get("continuationToken")
        return cls(
            status=str(payload.get("status") or ""),
            events=tuple(dict(item) for item in events_raw if isinstance(item, Mapping)),
            continuation_token=str(token) if token else None,
        )


@dataclass(frozen=True)
class UpdateInfo:
    """Entry of a stack's update history."""

    kind: UpdateKind
    result: str
    version: int = 0
    start_time: int = 0
    end_time: int = 0
    message: str = ""
    config: ConfigMap = field(default_factory=dict)
    resource_changes: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "UpdateInfo":
        changes_raw = (
            payload.get("resourceChanges") if isinstance(payload.get("resourceChanges"), Mapping) else {}
        )
        config_raw = payload.get("config") if isinstance(payload.get("config"), Mapping) else {}
        return cls(
            kind=UpdateKind.parse(str(payload.get("kind") or "update")),
            result=str(payload.get("result") or ""),
            version=int(payload.get("version") or 0),
            start_time=int(payload.get("startTime") or 0),
            end_time=int(payload.get("endTime") or 0),
            message=str(payload.get("message") or ""),
            config=config_from_wire(config_raw),
            resource_changes={str(k): int(v) for k, v in changes_raw.items()},
        )


__all__ = [
    "CHECKPOINT_SCHEMA_VERSION",
    "CreateUpdateResult",
    "DeploymentSnapshot",
    "EngineEventBatch",
    "ListStacksFilter",
    "ProgramInfo",
    "RequiredPolicy",
    "Stack",
    "StackSummary",
    "StartUpdateResult",
    "UpdateInfo",
    "UpdateMetadata",
    "UpdateOptions",
    "UpdateResults",
    "UpdateStatus",
]
