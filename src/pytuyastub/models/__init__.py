"""Data models for Tuya protocol messages and payloads."""

from pytuyastub.models._base import CommandType, TuyaBaseModel
from pytuyastub.models.message import TuyaMessage
from pytuyastub.models.payloads import (
    ControlRequest,
    DiscoveryAnnouncement,
    QueryRequest,
    QueryResponse,
    StatusPush,
)

__all__ = [
    "CommandType",
    "ControlRequest",
    "DiscoveryAnnouncement",
    "QueryRequest",
    "QueryResponse",
    "StatusPush",
    "TuyaBaseModel",
    "TuyaMessage",
]
