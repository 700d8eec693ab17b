from __future__ import annotations

"""Immutable keys naming a stack and one update attempt within it."""

from dataclasses import dataclass
from enum import Enum


class UpdateKind(str, Enum):
    """Kind of operation an update performs against a stack."""

    UPDATE = "update"
    PREVIEW = "preview"
    REFRESH = "refresh"
    DESTROY = "destroy"
    IMPORT = "import"

    @classmethod
    def parse(cls, raw: str) -> "UpdateKind":
        text = str(raw or "").strip().lower()
        try:
            return cls(text)
        except ValueError as exc:
            raise ValueError(f"Unknown update kind: {raw!r}") from exc


@dataclass(frozen=True)
class StackIdentifier:
    """Owning organization, project, and stack name of a deployable unit."""

    owner: str
    """Organization or user that owns the stack."""
    project: str
    """Project the stack belongs to."""
    stack: str
    """Stack name, unique within the project."""

    def __post_init__(self) -> None:
        for label in ("owner", "project", "stack"):
            value = getattr(self, label)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"StackIdentifier.{label} must be a non-empty string.")

    def __str__(self) -> str:
        return f"{self.owner}/{self.project}/{self.stack}"

    @classmethod
    def parse(cls, text: str) -> "StackIdentifier":
        """Parse ``owner/project/stack`` notation."""
        parts = [part.strip() for part in str(text or "").split("/")]
        if len(parts) != 3:
            raise ValueError(f"Expected 'owner/project/stack', got {text!r}")
        return cls(owner=parts[0], project=parts[1], stack=parts[2])


@dataclass(frozen=True)
class UpdateIdentifier:
    """Identifies exactly one update attempt against a stack."""

    stack: StackIdentifier
    kind: UpdateKind
    update_id: str
    """Opaque identifier assigned by the backend."""

    def __post_init__(self) -> None:
        if not isinstance(self.update_id, str) or not self.update_id.strip():
            raise ValueError("UpdateIdentifier.update_id must be a non-empty string.")

    def __str__(self) -> str:
        return f"{self.stack}@{self.kind.value}:{self.update_id}"


__all__ = ["StackIdentifier", "UpdateIdentifier", "UpdateKind"]
