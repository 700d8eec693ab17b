from __future__ import annotations

"""Validation helpers for stack names and stack tags."""

import re
from typing import Mapping, Optional

from .errors import ValidationError

_STACK_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,100}$")
_TAG_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.:-]{1,40}$")
MAX_TAG_VALUE_LENGTH = 256


def validate_stack_name(name: str) -> None:
    """Raise ``ValidationError`` unless ``name`` is a legal stack name."""
    if not isinstance(name, str) or not _STACK_NAME_PATTERN.fullmatch(name):
        raise ValidationError(
            "Stack names may only contain alphanumerics, hyphens, underscores, "
            "or periods, and must be at most 100 characters.",
            field="stack",
        )


def validate_stack_tags(tags: Optional[Mapping[str, str]]) -> None:
    """Raise ``ValidationError`` for the first malformed tag name or value."""
    for name, value in (tags or {}).items():
        if not isinstance(name, str) or not _TAG_NAME_PATTERN.fullmatch(name):
            raise ValidationError(
                f"Invalid stack tag {name!r}: tag names may only contain alphanumerics, "
                "hyphens, underscores, periods, or colons, and must be at most 40 characters.",
                field=f"tags.{name}",
            )
        if not isinstance(value, str):
            raise ValidationError(f"Stack tag {name!r} must have a string value.", field=f"tags.{name}")
        if len(value) > MAX_TAG_VALUE_LENGTH:
            raise ValidationError(
                f"Stack tag {name!r} value is too long (max length {MAX_TAG_VALUE_LENGTH} characters).",
                field=f"tags.{name}",
            )


def validate_stack_properties(name: str, tags: Optional[Mapping[str, str]]) -> None:
    validate_stack_name(name)
    validate_stack_tags(tags)


__all__ = ["validate_stack_name", "validate_stack_tags", "validate_stack_properties"]
