"""Stub configuration for pytuyastub."""

from __future__ import annotations

import dataclasses
import enum
import json
import os
from typing import Any

from pytuyastub._constants import (
    DEFAULT_BROADCAST_ADDRESS,
    DEFAULT_BROADCAST_INTERVAL,
    DEFAULT_BROADCAST_PORT,
    DEFAULT_IP,
    DEFAULT_LISTEN_HOST,
    DEFAULT_LISTEN_PORT,
    LOCAL_KEY_LENGTH,
    MAX_TIMESTAMP_SKEW_SECONDS,
    PROTOCOL_VERSION_31,
    SUPPORTED_PROTOCOL_VERSIONS,
)
from pytuyastub.exceptions import StubConfigError


class ConnectionPolicy(enum.StrEnum):
    """What to do when a client connects while another one is active."""

    REPLACE = "replace"
    """Close the previous connection and serve the newcomer."""

    REJECT = "reject"
    """Keep the previous connection and close the newcomer."""


@dataclasses.dataclass(frozen=True)
class DeviceIdentity:
    """Immutable identity of the emulated device.

    Parameters
    ----------
    device_id : str
        Tuya ``devId`` (also used as ``gwId``).
    local_key : str
        16-character local key. Its UTF-8 bytes are the AES-128 key.
    protocol_version : str
        Protocol version tag. Only ``"3.1"`` is supported.
    """

    device_id: str
    local_key: str
    protocol_version: str = PROTOCOL_VERSION_31

    def __post_init__(self) -> None:
        if not self.device_id or not self.device_id.strip():
            raise StubConfigError("device_id must be non-empty")
        key_len = len(self.local_key.encode("utf-8"))
        if key_len != LOCAL_KEY_LENGTH:
            raise StubConfigError(f"local_key must be {LOCAL_KEY_LENGTH} bytes (got {key_len})")
        if self.protocol_version not in SUPPORTED_PROTOCOL_VERSIONS:
            supported = ", ".join(sorted(SUPPORTED_PROTOCOL_VERSIONS))
            raise StubConfigError(
                f"Unsupported protocol version {self.protocol_version!r} (supported: {supported})"
            )

    def cipher_key(self) -> bytes:
        """AES key bytes derived from the local key."""
        return self.local_key.encode("utf-8")


@dataclasses.dataclass(frozen=True)
class StubConfig:
    """Stub configuration.

    Parameters
    ----------
    device_id : str
        Device identifier announced and expected in requests.
    local_key : str
        Shared 16-character device secret.
    initial_state : dict
        Data points the device starts with.
    ip : str
        Address advertised in discovery broadcasts.
    listen_host : str
        Interface the TCP control service binds to.
    listen_port : int
        TCP control port. ``0`` picks a free port.
    broadcast_port : int
        UDP port discovery frames are sent to.
    broadcast_interval : float
        Seconds between discovery frames.
    broadcast_address : str
        Destination address for discovery frames.
    protocol_version : str
        Protocol version tag, ``"3.1"``.
    connection_policy : ConnectionPolicy
        Behaviour when a second client connects.
    max_timestamp_skew : float
        Maximum accepted distance (seconds) between a control request's
        ``t`` and the local clock.
    """

    device_id: str
    local_key: str
    initial_state: dict[str, Any] = dataclasses.field(default_factory=dict)
    ip: str = DEFAULT_IP
    listen_host: str = DEFAULT_LISTEN_HOST
    listen_port: int = DEFAULT_LISTEN_PORT
    broadcast_port: int = DEFAULT_BROADCAST_PORT
    broadcast_interval: float = DEFAULT_BROADCAST_INTERVAL
    broadcast_address: str = DEFAULT_BROADCAST_ADDRESS
    protocol_version: str = PROTOCOL_VERSION_31
    connection_policy: ConnectionPolicy = ConnectionPolicy.REPLACE
    max_timestamp_skew: float = MAX_TIMESTAMP_SKEW_SECONDS

    def __post_init__(self) -> None:
        # Fail fast on identity problems.
        _ = self.identity
        if self.broadcast_interval <= 0:
            raise StubConfigError(f"broadcast_interval must be positive (got {self.broadcast_interval})")
        if self.max_timestamp_skew < 0:
            raise StubConfigError(f"max_timestamp_skew must not be negative (got {self.max_timestamp_skew})")
        for name in ("listen_port", "broadcast_port"):
            port = getattr(self, name)
            if not 0 <= port <= 0xFFFF:
                raise StubConfigError(f"{name} out of range: {port}")
        if not isinstance(self.connection_policy, ConnectionPolicy):
            try:
                object.__setattr__(self, "connection_policy", ConnectionPolicy(self.connection_policy))
            except ValueError as exc:
                raise StubConfigError(f"Unknown connection policy: {self.connection_policy!r}") from exc

    @property
    def identity(self) -> DeviceIdentity:
        """Device identity built from this configuration."""
        return DeviceIdentity(
            device_id=self.device_id,
            local_key=self.local_key,
            protocol_version=self.protocol_version,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> StubConfig:
        """Create configuration from environment variables.

        Reads ``TUYA_STUB_DEVICE_ID``, ``TUYA_STUB_LOCAL_KEY`` and the
        optional ``TUYA_STUB_*`` variables. ``TUYA_STUB_INITIAL_STATE``
        holds a JSON object. Explicit keyword arguments override
        environment values.

        Returns
        -------
        StubConfig
            Populated configuration.

        Raises
        ------
        StubConfigError
            If a variable cannot be converted or a required value is missing.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TUYA_STUB_DEVICE_ID": "device_id",
            "TUYA_STUB_LOCAL_KEY": "local_key",
            "TUYA_STUB_IP": "ip",
            "TUYA_STUB_LISTEN_HOST": "listen_host",
            "TUYA_STUB_BROADCAST_ADDRESS": "broadcast_address",
            "TUYA_STUB_PROTOCOL_VERSION": "protocol_version",
            "TUYA_STUB_CONNECTION_POLICY": "connection_policy",
        }
        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "TUYA_STUB_LISTEN_PORT": ("listen_port", int),
            "TUYA_STUB_BROADCAST_PORT": ("broadcast_port", int),
            "TUYA_STUB_BROADCAST_INTERVAL": ("broadcast_interval", float),
            "TUYA_STUB_MAX_TIMESTAMP_SKEW": ("max_timestamp_skew", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = val

        for env_key, (field_name, convert) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = convert(val)
            except ValueError as exc:
                raise StubConfigError(f"{env_key} is not a valid {convert.__name__}: {val!r}") from exc

        state_env = env.get("TUYA_STUB_INITIAL_STATE")
        if state_env is not None and "initial_state" not in overrides:
            try:
                state = json.loads(state_env)
            except json.JSONDecodeError as exc:
                raise StubConfigError("TUYA_STUB_INITIAL_STATE must be a JSON object") from exc
            if not isinstance(state, dict):
                raise StubConfigError("TUYA_STUB_INITIAL_STATE must be a JSON object")
            config_kwargs["initial_state"] = state

        config_kwargs.update(overrides)

        for required in ("device_id", "local_key"):
            if not config_kwargs.get(required):
                raise StubConfigError(f"Missing required setting: {required}")

        return cls(**config_kwargs)
