"""55AA frame packing and unpacking.

Layout (big-endian)::

    prefix(4) seqno(4) command(4) length(4) [retcode(4)] payload crc32(4) suffix(4)

``length`` counts everything after the 16-byte header. The CRC covers the
prefix up to the last payload byte.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from pytuyastub._constants import (
    HEADER_FMT,
    HEADER_SIZE,
    MAX_PAYLOAD_LENGTH,
    PREFIX,
    RETCODE_SIZE,
    SUFFIX,
    TRAILER_SIZE,
)
from pytuyastub._crypto.hashing import frame_crc32
from pytuyastub.exceptions import ChecksumError, MalformedFrameError


@dataclass(frozen=True, slots=True)
class FrameHeader:
    """Parsed fixed-size frame header."""

    seqno: int
    command: int
    length: int

    @property
    def total_length(self) -> int:
        """Size of the whole frame on the wire."""
        return HEADER_SIZE + self.length


def parse_header(buffer: bytes | bytearray) -> FrameHeader:
    """Parse the header at the start of *buffer*.

    Raises
    ------
    MalformedFrameError
        If the buffer is too short, does not start with the prefix, or the
        declared length is outside the accepted range.
    """
    if len(buffer) < HEADER_SIZE:
        raise MalformedFrameError(f"Need {HEADER_SIZE} header bytes, got {len(buffer)}")
    prefix, seqno, command, length = struct.unpack_from(HEADER_FMT, buffer, 0)
    if prefix != PREFIX:
        raise MalformedFrameError(f"Bad prefix 0x{prefix:08x}")
    if length < TRAILER_SIZE:
        raise MalformedFrameError(
            f"Declared length {length} is shorter than the trailer",
            seqno=seqno,
            command=command,
        )
    if length - TRAILER_SIZE > MAX_PAYLOAD_LENGTH + RETCODE_SIZE:
        raise MalformedFrameError(
            f"Declared length {length} exceeds maximum payload of {MAX_PAYLOAD_LENGTH} bytes",
            seqno=seqno,
            command=command,
        )
    return FrameHeader(seqno=seqno, command=command, length=length)


def pack_frame(command: int, seqno: int, payload: bytes, retcode: int | None = None) -> bytes:
    """Build a complete frame around an already encoded *payload*."""
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise MalformedFrameError(
            f"Payload of {len(payload)} bytes exceeds maximum of {MAX_PAYLOAD_LENGTH}",
            seqno=seqno,
            command=command,
        )
    body = payload if retcode is None else struct.pack(">I", retcode) + payload
    head = struct.pack(HEADER_FMT, PREFIX, seqno, command, len(body) + TRAILER_SIZE)
    crc = frame_crc32(head + body)
    return head + body + struct.pack(">II", crc, SUFFIX)


def unpack_frame(frame: bytes) -> tuple[FrameHeader, int | None, bytes]:
    """Validate one complete frame and split it into its parts.

    Returns
    -------
    tuple
        ``(header, retcode, payload)``; ``retcode`` is ``None`` when the
        frame carries no return code.

    Raises
    ------
    MalformedFrameError
        If the header is invalid, the frame is truncated or the suffix is
        missing.
    ChecksumError
        If the CRC32 does not match.
    """
    header = parse_header(frame)
    if len(frame) < header.total_length:
        raise MalformedFrameError(
            f"Frame truncated: need {header.total_length} bytes, got {len(frame)}",
            seqno=header.seqno,
            command=header.command,
        )
    end = header.total_length
    crc, suffix = struct.unpack_from(">II", frame, end - TRAILER_SIZE)
    expected = frame_crc32(frame[: end - TRAILER_SIZE])
    if crc != expected:
        raise ChecksumError(
            f"CRC mismatch: frame carries 0x{crc:08x}, computed 0x{expected:08x}",
            seqno=header.seqno,
            command=header.command,
        )
    if suffix != SUFFIX:
        raise MalformedFrameError(
            f"Bad suffix 0x{suffix:08x}",
            seqno=header.seqno,
            command=header.command,
        )

    body = frame[HEADER_SIZE : end - TRAILER_SIZE]
    retcode: int | None = None
    if len(body) >= RETCODE_SIZE:
        (candidate,) = struct.unpack_from(">I", body, 0)
        # JSON and "3.1" payloads always have a non-zero high byte.
        if candidate & 0xFFFFFF00 == 0:
            retcode = candidate
            body = body[RETCODE_SIZE:]
    return header, retcode, bytes(body)
