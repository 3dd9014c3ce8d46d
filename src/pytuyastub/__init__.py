"""pytuyastub - Local emulator of a Tuya 3.1 LAN device for client testing."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pytuyastub")
except PackageNotFoundError:
    __version__ = "0+local"

from pytuyastub.codec import FrameCodec, FrameDecoder
from pytuyastub.config import ConnectionPolicy, DeviceIdentity, StubConfig
from pytuyastub.exceptions import (
    ChecksumError,
    DecryptionError,
    FrameError,
    IdentityMismatchError,
    MalformedFrameError,
    MessageError,
    StaleRequestError,
    StubConfigError,
    StubCryptoError,
    StubStateError,
    TuyaStubError,
)
from pytuyastub.models import (
    CommandType,
    ControlRequest,
    DiscoveryAnnouncement,
    QueryRequest,
    QueryResponse,
    StatusPush,
    TuyaMessage,
)
from pytuyastub.session import ProtocolSession, SessionResult, SessionState
from pytuyastub.state import DeviceStateStore
from pytuyastub.stub import TuyaStub

__all__ = [
    "__version__",
    "ChecksumError",
    "CommandType",
    "ConnectionPolicy",
    "ControlRequest",
    "DecryptionError",
    "DeviceIdentity",
    "DeviceStateStore",
    "DiscoveryAnnouncement",
    "FrameCodec",
    "FrameDecoder",
    "FrameError",
    "IdentityMismatchError",
    "MalformedFrameError",
    "MessageError",
    "ProtocolSession",
    "QueryRequest",
    "QueryResponse",
    "SessionResult",
    "SessionState",
    "StaleRequestError",
    "StatusPush",
    "StubConfig",
    "StubConfigError",
    "StubCryptoError",
    "StubStateError",
    "TuyaMessage",
    "TuyaStub",
    "TuyaStubError",
]
