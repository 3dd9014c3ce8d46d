"""Frame codec: structured messages to wire bytes and back.

:class:`FrameCodec` owns the device key and turns :class:`TuyaMessage`
objects into 55AA frames. Decoding is stream oriented: TCP may deliver
several frames in one read or split one frame across reads, so
:class:`FrameDecoder` keeps unconsumed bytes between calls.

Frame-level failures never abort a whole buffer. The decoder returns the
corresponding :class:`FrameError` in place of the dropped frame and keeps
scanning, so callers see messages and errors in arrival order.
"""

from __future__ import annotations

import logging

from pytuyastub._constants import HEADER_SIZE, PREFIX_BYTES
from pytuyastub._protocol.frame import pack_frame, parse_header, unpack_frame
from pytuyastub._protocol.payload import decode_payload, encode_payload
from pytuyastub._redact import redact_for_log
from pytuyastub.config import DeviceIdentity
from pytuyastub.exceptions import FrameError, MalformedFrameError
from pytuyastub.models.message import TuyaMessage

_logger = logging.getLogger(__name__)

DecodeResult = TuyaMessage | FrameError


def _partial_prefix_length(buffer: bytearray) -> int:
    """Length of the longest buffer tail that could begin a prefix."""
    for size in range(len(PREFIX_BYTES) - 1, 0, -1):
        if buffer.endswith(PREFIX_BYTES[:size]):
            return size
    return 0


class FrameCodec:
    """Encode and decode frames for one device identity."""

    def __init__(self, identity: DeviceIdentity) -> None:
        self._identity = identity
        self._key = identity.cipher_key()

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    def encode(self, message: TuyaMessage) -> bytes:
        """Encode *message* into one complete frame."""
        payload = encode_payload(message.command, message.data, self._key)
        frame = pack_frame(message.command, message.seqno, payload, message.retcode)
        _logger.debug(
            "Encoded %s (%d bytes, payload %s): %s",
            message.describe(),
            len(frame),
            redact_for_log(payload),
            redact_for_log(message.data),
        )
        return frame

    def decode_frame(self, frame: bytes) -> TuyaMessage:
        """Decode exactly one complete frame.

        Raises
        ------
        ChecksumError
            If the frame's CRC does not match.
        MalformedFrameError
            If the frame or its payload is structurally invalid.
        DecryptionError
            If an encrypted payload cannot be decrypted.
        """
        header, retcode, payload = unpack_frame(frame)
        try:
            data = decode_payload(header.command, payload, self._key)
        except FrameError as exc:
            exc.seqno = header.seqno
            exc.command = header.command
            raise
        return TuyaMessage(command=header.command, seqno=header.seqno, retcode=retcode, data=data)

    def decode(self, buffer: bytes, carryover: bytes = b"") -> tuple[list[DecodeResult], bytes]:
        """Decode every complete frame in ``carryover + buffer``.

        Returns
        -------
        tuple
            ``(results, remaining)``: decoded messages and frame errors in
            arrival order, and the bytes to pass back as *carryover* on the
            next call.
        """
        pending = bytearray(carryover)
        pending.extend(buffer)
        results = self._scan(pending)
        return results, bytes(pending)

    def decoder(self) -> FrameDecoder:
        """Create a stateful stream decoder bound to this codec."""
        return FrameDecoder(self)

    def _scan(self, buffer: bytearray) -> list[DecodeResult]:
        """Consume complete frames from the front of *buffer* in place."""
        results: list[DecodeResult] = []
        while buffer:
            start = buffer.find(PREFIX_BYTES)
            if start < 0:
                keep = _partial_prefix_length(buffer)
                dropped = len(buffer) - keep
                if dropped:
                    _logger.debug("Discarding %d bytes of noise", dropped)
                    del buffer[:dropped]
                break
            if start > 0:
                _logger.debug("Discarding %d bytes before frame prefix", start)
                del buffer[:start]

            if len(buffer) < HEADER_SIZE:
                break
            try:
                header = parse_header(buffer)
            except MalformedFrameError as exc:
                _logger.warning("Dropping frame header: %s", exc)
                results.append(exc)
                # Resync on the next prefix occurrence.
                del buffer[: len(PREFIX_BYTES)]
                continue

            if len(buffer) < header.total_length:
                break
            frame = bytes(buffer[: header.total_length])
            del buffer[: header.total_length]
            try:
                results.append(self.decode_frame(frame))
            except FrameError as exc:
                _logger.warning("Dropping frame seq=%s cmd=%s: %s", exc.seqno, exc.command, exc)
                results.append(exc)
        return results


class FrameDecoder:
    """Incremental decoder that survives split and merged TCP reads."""

    def __init__(self, codec: FrameCodec) -> None:
        self._codec = codec
        self._buffer = bytearray()

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet part of a complete frame."""
        return bytes(self._buffer)

    def feed(self, data: bytes) -> list[DecodeResult]:
        """Add *data* and return everything that became decodable."""
        self._buffer.extend(data)
        return self._codec._scan(self._buffer)  # noqa: SLF001

    def reset(self) -> None:
        """Forget any partially received frame."""
        self._buffer.clear()
