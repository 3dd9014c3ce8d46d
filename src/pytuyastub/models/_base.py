"""Base model and command enum for Tuya payloads.

Every payload schema inherits from :class:`TuyaBaseModel` which maps the
protocol's camelCase keys (``devId``, ``gwId``) to snake_case fields and
ignores keys it does not know about, so newer clients can add fields
without breaking the stub.
"""

from __future__ import annotations

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CommandType(enum.IntEnum):
    """Command codes of the 3.1 protocol that the stub understands."""

    UDP = 0
    CONTROL = 7
    STATUS = 8
    HEARTBEAT = 9
    DP_QUERY = 10

    @classmethod
    def lookup(cls, code: int) -> CommandType | None:
        """Return the member for *code*, or ``None`` when it is not mapped."""
        try:
            return cls(code)
        except ValueError:
            return None


class TuyaBaseModel(BaseModel):
    """Base for wire payload schemas."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """Dump to the camelCase dict that is serialized onto the wire."""
        return self.model_dump(by_alias=True, exclude_none=True)
