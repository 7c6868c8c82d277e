"""Shared plumbing for configuration values tagged by ``type``."""

from typing import Any

from pydantic import BaseModel, ConfigDict


class RuleModel(BaseModel):
    """Base for declarative rule configuration.

    Field names that collide with Python keywords (``with``, ``as``) are
    declared with a trailing underscore and an alias.
    """

    model_config = ConfigDict(populate_by_name=True)


class UnknownVariant(RuleModel):
    """Catch-all arm for an unrecognised ``type``; keeps every extra key."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str


def variant_tag(known: set[str]):
    """Build a callable discriminator that routes unknown types to ``unknown``."""

    def _tag(value: Any) -> str:
        if isinstance(value, dict):
            kind = value.get("type")
        else:
            kind = getattr(value, "type", None)
        return kind if kind in known else "unknown"

    return _tag
