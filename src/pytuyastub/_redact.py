"""Helpers for safe debug logging.

Request bodies carry the client's Tuya ``uid`` and the stub configuration
carries the device's local key. Encrypted payloads are opaque, so they are
logged by size only.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pytuyastub._constants import VERSION_31_BYTES

_SENSITIVE_VALUE_KEYS: frozenset[str] = frozenset(
    {
        "uid",
        "localkey",
        "local_key",
    }
)


def _describe_bytes(value: bytes | bytearray) -> str:
    if value.startswith(VERSION_31_BYTES):
        return f"<3.1 envelope:{len(value)}b>"
    return f"<bytes:{len(value)}b>"


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a copy of *value* with secrets masked and large values shortened."""
    if _depth > 20:
        return "<max-depth>"

    if value is None or isinstance(value, (int, float, bool)):
        return value

    if isinstance(value, str):
        if len(value) > max_string:
            return f"{value[:max_string]}…<truncated>"
        return value

    if isinstance(value, (bytes, bytearray)):
        return _describe_bytes(value)

    if isinstance(value, Mapping):
        return {
            str(k): "<redacted>"
            if str(k).lower() in _SENSITIVE_VALUE_KEYS
            else redact_for_log(v, max_string=max_string, _depth=_depth + 1)
            for k, v in value.items()
        }

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [redact_for_log(v, max_string=max_string, _depth=_depth + 1) for v in value]

    return repr(value)
