"""Thread-safe in-memory data point store."""

from __future__ import annotations

import copy
import threading
from collections.abc import Mapping
from typing import Any

_SCALAR_TYPES = (bool, int, float, str, type(None))


def normalize_dp_key(key: str | int) -> str:
    """Data point ids travel as JSON object keys, so ``1`` and ``"1"`` are the same point."""
    if isinstance(key, bool) or not isinstance(key, (str, int)):
        raise TypeError(f"Data point key must be str or int, got {type(key).__name__}")
    return str(key)


def _validate_value(key: str, value: Any) -> Any:
    if not isinstance(value, _SCALAR_TYPES):
        raise ValueError(f"Data point {key!r} must be a JSON scalar, got {type(value).__name__}")
    return value


def _normalize(values: Mapping[Any, Any]) -> dict[str, Any]:
    normalized: dict[str, Any] = {}
    for key, value in values.items():
        dp = normalize_dp_key(key)
        normalized[dp] = _validate_value(dp, value)
    return normalized


class DeviceStateStore:
    """Mapping of data point id to value.

    Every mutation is validated in full before anything is written, and
    all access is serialized by one re-entrant lock, so a batch update is
    either applied completely or not at all, even when host threads and the
    event loop mutate concurrently.
    """

    def __init__(self, initial: Mapping[Any, Any] | None = None) -> None:
        self._lock = threading.RLock()
        self._dps: dict[str, Any] = _normalize(initial or {})

    @property
    def lock(self) -> threading.RLock:
        """Lock guarding the store; hold it to combine a write with a snapshot."""
        return self._lock

    def get(self, key: str | int) -> Any:
        """Return the value of one data point, or ``None`` if unset."""
        dp = normalize_dp_key(key)
        with self._lock:
            return self._dps.get(dp)

    def set(self, key: str | int, value: Any) -> Any:
        """Set one data point and return the stored value."""
        dp = normalize_dp_key(key)
        _validate_value(dp, value)
        with self._lock:
            self._dps[dp] = value
            return value

    def update(self, dps: Mapping[Any, Any]) -> dict[str, Any]:
        """Apply every entry of *dps* atomically and return the new snapshot.

        Raises
        ------
        ValueError, TypeError
            If any key or value is invalid. Nothing is applied in that case.
        """
        patch = _normalize(dps)
        with self._lock:
            self._dps.update(patch)
            return copy.deepcopy(self._dps)

    def replace(self, state: Mapping[Any, Any]) -> dict[str, Any]:
        """Replace the whole state atomically and return the new snapshot."""
        normalized = _normalize(state)
        with self._lock:
            self._dps = normalized
            return copy.deepcopy(self._dps)

    def snapshot(self) -> dict[str, Any]:
        """Deep copy of the current state."""
        with self._lock:
            return copy.deepcopy(self._dps)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, int)) or isinstance(key, bool):
            return False
        with self._lock:
            return str(key) in self._dps

    def __len__(self) -> int:
        with self._lock:
            return len(self._dps)
