"""Use case for deleting a stack with an optional force-delete confirmation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from stackops.domain.errors import StackHasResourcesError
from stackops.domain.identifiers import StackIdentifier
from stackops.domain.ports import ConfirmPort, StackServicePort
from stackops.usecases.error_mapping import map_api_error


@dataclass(frozen=True)
class DeleteStackResult:
    """Outcome of a delete attempt."""

    stack: StackIdentifier
    deleted: bool
    forced: bool = False


@dataclass
class DeleteStack:
    """Delete a stack; when it still has resources, ask ``confirm`` before forcing."""

    service: StackServicePort
    confirm: Optional[ConfirmPort] = None

    def __call__(self, *, stack: StackIdentifier, force: bool = False) -> DeleteStackResult:
        try:
            self.service.delete_stack(stack, force=force)
            return DeleteStackResult(stack=stack, deleted=True, forced=force)
        except StackHasResourcesError:
            if self.confirm is None:
                raise
            prompt = (
                f"Stack {stack} still has resources. "
                "Delete it anyway? Its resources will be orphaned."
            )
            if not self.confirm.confirm(prompt, default=False):
                return DeleteStackResult(stack=stack, deleted=False)
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="STACK_DELETE_FAILED",
                default_message="Failed to delete stack.",
            ) from exc

        try:
            self.service.delete_stack(stack, force=True)
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="STACK_DELETE_FAILED",
                default_message="Failed to force-delete stack.",
            ) from exc
        return DeleteStackResult(stack=stack, deleted=True, forced=True)


__all__ = ["DeleteStack", "DeleteStackResult"]
