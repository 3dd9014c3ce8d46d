"""Per-command payload schemas.

Requests and responses each get their own model instead of an open
dictionary. Only ``dps`` stays open-ended: data point ids and values are
device specific.
"""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator

from pytuyastub.models._base import TuyaBaseModel


def _stringify_dps(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): v for k, v in value.items()}
    return value


class QueryRequest(TuyaBaseModel):
    """``DP_QUERY`` request body sent by a client."""

    dev_id: str
    gw_id: str | None = None
    uid: str | None = None
    t: int | None = None


class ControlRequest(TuyaBaseModel):
    """Decrypted ``CONTROL`` request body."""

    dev_id: str
    uid: str | None = None
    t: int | None = None
    dps: dict[str, Any] = Field(default_factory=dict)

    @field_validator("t", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> Any:
        # Some clients send the timestamp as a string.
        if isinstance(value, str) and value.strip().lstrip("-").isdigit():
            return int(value)
        if isinstance(value, float):
            return int(value)
        return value

    @field_validator("dps", mode="before")
    @classmethod
    def _normalize_dps(cls, value: Any) -> Any:
        return _stringify_dps(value)


class QueryResponse(TuyaBaseModel):
    """``DP_QUERY`` response body."""

    dev_id: str
    gw_id: str
    dps: dict[str, Any] = Field(default_factory=dict)


class StatusPush(TuyaBaseModel):
    """Unsolicited ``STATUS`` body reporting the full device state."""

    dev_id: str
    dps: dict[str, Any] = Field(default_factory=dict)
    t: int


class DiscoveryAnnouncement(TuyaBaseModel):
    """UDP discovery broadcast body."""

    ip: str
    gw_id: str
    dev_id: str
    version: str
