from __future__ import annotations

"""Stack configuration values tagged plaintext-or-secret.

Secret values are opaque ciphertext here: they are parsed from and written to
the wire verbatim and never decrypted.
"""

from dataclasses import dataclass
from typing import Any, Dict, Mapping


@dataclass(frozen=True, order=True)
class ConfigKey:
    """Configuration key in ``namespace:name`` form."""

    namespace: str
    name: str

    def __post_init__(self) -> None:
        if not self.namespace or not self.name:
            raise ValueError("ConfigKey requires a namespace and a name.")

    def __str__(self) -> str:
        return f"{self.namespace}:{self.name}"

    @classmethod
    def parse(cls, text: str) -> "ConfigKey":
        """Parse ``namespace:name``; the legacy ``namespace:config:name`` form is normalized."""
        parts = str(text or "").split(":")
        if len(parts) == 2:
            namespace, name = parts
        elif len(parts) == 3 and parts[1] == "config":
            namespace, name = parts[0], parts[2]
        else:
            raise ValueError(f"Configuration keys should be of the form 'namespace:name', got {text!r}")
        if not namespace or not name:
            raise ValueError(f"Configuration keys should be of the form 'namespace:name', got {text!r}")
        return cls(namespace=namespace, name=name)


@dataclass(frozen=True)
class ConfigValue:
    """One configuration value; ``value`` is ciphertext when ``secret`` is set."""

    value: str
    secret: bool = False

    def to_wire(self) -> Dict[str, Any]:
        return {"string": self.value, "secret": self.secret}

    @classmethod
    def from_wire(cls, payload: Mapping[str, Any]) -> "ConfigValue":
        return cls(value=str(payload.get("string") or ""), secret=bool(payload.get("secret")))


ConfigMap = Dict[ConfigKey, ConfigValue]


def config_from_wire(raw: Mapping[str, Any] | None) -> ConfigMap:
    """Build a ``ConfigMap`` from the ``{"key": {"string", "secret"}}`` wire shape."""
    cfg: ConfigMap = {}
    for key, value in (raw or {}).items():
        if not isinstance(value, Mapping):
            raise ValueError(f"Invalid configuration value for {key!r}")
        cfg[ConfigKey.parse(key)] = ConfigValue.from_wire(value)
    return cfg


def config_to_wire(cfg: Mapping[ConfigKey, ConfigValue] | None) -> Dict[str, Dict[str, Any]]:
    return {str(key): value.to_wire() for key, value in sorted((cfg or {}).items())}


__all__ = ["ConfigKey", "ConfigMap", "ConfigValue", "config_from_wire", "config_to_wire"]
