"""Use case for reading a stack's most recent configuration."""

from __future__ import annotations

from dataclasses import dataclass, field

from stackops.domain.config import ConfigMap
from stackops.domain.errors import NoPreviousDeploymentError
from stackops.domain.identifiers import StackIdentifier
from stackops.domain.ports import StackServicePort
from stackops.usecases.error_mapping import map_api_error


@dataclass(frozen=True)
class LatestConfiguration:
    """Configuration of the latest update; ``first_run`` when there is none yet."""

    config: ConfigMap = field(default_factory=dict)
    first_run: bool = False


@dataclass
class LoadLatestConfiguration:
    """Return the latest configuration, treating "no previous deployment" as a first run."""

    service: StackServicePort

    def __call__(self, *, stack: StackIdentifier) -> LatestConfiguration:
        try:
            config = self.service.get_latest_configuration(stack)
        except NoPreviousDeploymentError:
            return LatestConfiguration(first_run=True)
        except Exception as exc:
            raise map_api_error(
                exc,
                default_code="CONFIG_LOAD_FAILED",
                default_message="Failed to load latest configuration.",
            ) from exc
        return LatestConfiguration(config=config)


__all__ = ["LatestConfiguration", "LoadLatestConfiguration"]
