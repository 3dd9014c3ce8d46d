"""Structured (decoded) protocol messages."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pytuyastub._constants import NO_SEQUENCE
from pytuyastub.models._base import CommandType


class TuyaMessage(BaseModel):
    """One logical message, before encoding or after decoding.

    ``data`` is the structured payload: ``None`` for an empty payload
    (heartbeats, acknowledgements), otherwise the JSON object carried in
    the frame after decryption.
    """

    model_config = ConfigDict(frozen=True)

    command: int = Field(..., ge=0, le=0xFFFFFFFF)
    seqno: int = Field(default=NO_SEQUENCE, ge=0, le=0xFFFFFFFF)
    retcode: int | None = Field(default=None, ge=0, le=0xFF)
    data: dict[str, Any] | None = None

    @field_validator("data")
    @classmethod
    def _empty_is_none(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if value is not None and not value:
            return None
        return value

    @property
    def command_type(self) -> CommandType | None:
        """Known command type, or ``None`` for unmapped codes."""
        return CommandType.lookup(self.command)

    def describe(self) -> str:
        """Short human-readable tag for logs."""
        kind = self.command_type
        name = kind.name if kind is not None else f"0x{self.command:02x}"
        return f"{name} seq={self.seqno}"
