from __future__ import annotations

import logging
import os
from typing import Mapping, Optional, Union

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%H:%M:%S"
_LEVEL_VAR = "STACKOPS_LOG_LEVEL"
_DEBUG_VARS = ("STACKOPS_DEBUG_LOGGING", "STACKOPS_DEBUG")
_TRUTHY = frozenset({"1", "true", "yes", "on"})
# connection-pool chatter; the transport logs its own retries
_QUIET_LOGGERS = ("urllib3",)


def _parse_level(text: Optional[str]) -> Optional[int]:
    value = (text or "").strip()
    if not value:
        return None
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else None


def level_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[int]:
    """Log level forced by the environment, or ``None`` when nothing is set."""
    env = os.environ if environ is None else environ
    explicit = _parse_level(env.get(_LEVEL_VAR))
    if explicit is not None:
        return explicit
    if any((env.get(var) or "").strip().lower() in _TRUTHY for var in _DEBUG_VARS):
        return logging.DEBUG
    return None


def configure_root(default_level: Union[int, str] = logging.INFO) -> int:
    """
    Configure the root logger with a compact format and return the level used.

    Environment overrides:
      - STACKOPS_LOG_LEVEL: explicit log level (name or number)
      - STACKOPS_DEBUG_LOGGING / STACKOPS_DEBUG: truthy -> DEBUG

    ``urllib3`` stays at WARNING unless DEBUG is in effect.
    """
    fallback = default_level if isinstance(default_level, int) else _parse_level(default_level)
    effective = level_from_env()
    if effective is None:
        effective = fallback if fallback is not None else logging.INFO

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=effective, format=_FORMAT, datefmt=_DATEFMT)
    root.setLevel(effective)
    quiet_level = effective if effective <= logging.DEBUG else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
    return effective
