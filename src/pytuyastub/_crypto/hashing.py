"""Checksums and signatures used on the wire."""

from __future__ import annotations

import hashlib
import zlib

from pytuyastub._constants import SIGNATURE_SIZE


def frame_crc32(data: bytes) -> int:
    """IEEE CRC-32 of *data* as an unsigned 32-bit integer.

    The frame checksum covers every byte from the prefix up to the end of
    the payload.
    """
    return zlib.crc32(data) & 0xFFFFFFFF


def payload_signature(encoded: bytes, version: bytes, key: bytes) -> bytes:
    """Compute the 3.1 payload signature.

    The signature is the middle 16 hex characters of
    ``md5(b"data=" + encoded + b"||lpv=" + version + b"||" + key)``.

    Parameters
    ----------
    encoded : bytes
        Base64 text of the encrypted payload.
    version : bytes
        Protocol version tag, e.g. ``b"3.1"``.
    key : bytes
        Device local key.

    Returns
    -------
    bytes
        16 ASCII hex characters.
    """
    digest = hashlib.md5(b"data=" + encoded + b"||lpv=" + version + b"||" + key).hexdigest()
    start = (32 - SIGNATURE_SIZE) // 2
    return digest[start : start + SIGNATURE_SIZE].encode("ascii")
