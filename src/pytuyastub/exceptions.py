"""Custom exception hierarchy for pytuyastub."""

from __future__ import annotations


class TuyaStubError(Exception):
    """Base exception for all pytuyastub errors."""


class StubConfigError(TuyaStubError):
    """Invalid or missing configuration."""


class StubStateError(TuyaStubError):
    """Operation not allowed in the current lifecycle state."""


class StubCryptoError(TuyaStubError):
    """Encryption or decryption failure."""


class FrameError(TuyaStubError):
    """A single wire frame could not be decoded.

    Frame errors are local to the offending frame: the stream decoder
    drops that frame and keeps going with the rest of the buffer.
    """

    def __init__(self, message: str, *, seqno: int | None = None, command: int | None = None) -> None:
        self.seqno = seqno
        self.command = command
        super().__init__(message)


class ChecksumError(FrameError):
    """CRC32 over header and payload did not match the frame trailer."""


class MalformedFrameError(FrameError):
    """Invalid declared length, missing suffix, or unparsable payload."""


class DecryptionError(FrameError, StubCryptoError):
    """Ciphertext length, padding, or payload signature is invalid."""


class MessageError(TuyaStubError):
    """A well-formed message that the device refuses to act on.

    Only the response to this one message is suppressed; the
    connection and the listener stay up.
    """

    def __init__(self, message: str, *, seqno: int = 0, command: int | None = None) -> None:
        self.seqno = seqno
        self.command = command
        super().__init__(message)


class IdentityMismatchError(MessageError):
    """The request's ``devId`` is not the emulated device's id."""


class StaleRequestError(MessageError):
    """The control request's timestamp is too far from the local clock.

    Also raised when the timestamp is missing altogether.
    """
