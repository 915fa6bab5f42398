"""
Tagged dropdown values for purpose, unit and person-to-meet.

A value is either one of the configured options or free text the receptionist
typed after picking "Other". Stored rows keep the legacy string encoding:
custom text is saved as ``"Other: <text>"`` and read back by stripping that
fixed 7-character prefix. A configured option that itself starts with
``"Other: "`` is therefore indistinguishable from custom text once stored.
"""
from typing import Any, Optional

from pydantic import BaseModel
from sqlalchemy import String
from sqlalchemy.types import TypeDecorator

from frontdesk.models.enums import ChoiceKind

CUSTOM_PREFIX = "Other: "


class Choice(BaseModel):
    kind: ChoiceKind
    value: str

    class Config:
        frozen = True

    @classmethod
    def predefined(cls, value: str) -> "Choice":
        return cls(kind=ChoiceKind.PREDEFINED, value=value)

    @classmethod
    def custom(cls, value: str) -> "Choice":
        return cls(kind=ChoiceKind.CUSTOM, value=value)

    @classmethod
    def decode(cls, raw: str) -> "Choice":
        """Parse a stored string into a Choice."""
        if raw.startswith(CUSTOM_PREFIX):
            return cls.custom(raw[len(CUSTOM_PREFIX):])
        return cls.predefined(raw)

    def encode(self) -> str:
        """Render the Choice in the stored string format."""
        if self.kind == ChoiceKind.CUSTOM:
            return f"{CUSTOM_PREFIX}{self.value}"
        return self.value

    @classmethod
    def coerce(cls, raw: Any) -> Optional["Choice"]:
        """
        Accept a Choice, a ``{"kind": ..., "value": ...}`` mapping or an
        encoded string. None passes through.
        """
        if raw is None or isinstance(raw, Choice):
            return raw
        if isinstance(raw, str):
            return cls.decode(raw)
        if isinstance(raw, dict):
            return cls(**raw)
        raise TypeError(f"Cannot interpret {type(raw).__name__} as a choice value")


class ChoiceType(TypeDecorator):
    """String column that round-trips Choice values through the legacy encoding."""

    impl = String(255)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Choice):
            return value.encode()
        # Already-encoded strings from older rows or raw inserts
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Choice.decode(value)
