"""Push full deployment snapshots for one update under its current lease."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from stackops.domain.identifiers import UpdateIdentifier
from stackops.domain.lease import LeaseToken
from stackops.domain.models import CHECKPOINT_SCHEMA_VERSION, DeploymentSnapshot
from stackops.domain.ports import StackServicePort

_log = logging.getLogger(__name__)


@dataclass
class CheckpointWriter:
    """Write or invalidate the stored checkpoint of ``update``.

    Every write carries the entire deployment, so replaying a write after a
    timeout stores the same state; the last accepted write wins. The writer
    makes no claim about concurrent calls: the caller keeps at most one write
    in flight per update.
    """

    service: StackServicePort
    update: UpdateIdentifier
    lease: LeaseToken
    writes: int = field(default=0, init=False)

    def write(self, deployment: Mapping[str, Any]) -> DeploymentSnapshot:
        """Persist ``deployment`` as the update's checkpoint and return the sent snapshot."""
        snapshot = DeploymentSnapshot(deployment=dict(deployment), version=CHECKPOINT_SCHEMA_VERSION)
        self.service.patch_update_checkpoint(self.update, snapshot, self.lease.current())
        self.writes += 1
        _log.debug("Checkpoint #%d written for %s.", self.writes, self.update)
        return snapshot

    def invalidate(self) -> None:
        """Mark the stored checkpoint unusable."""
        self.service.invalidate_update_checkpoint(self.update, self.lease.current())
        _log.warning("Checkpoint for %s invalidated.", self.update)


__all__ = ["CheckpointWriter"]
