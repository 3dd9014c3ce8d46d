"""Cryptographic primitives for the Tuya 3.1 LAN protocol."""

from __future__ import annotations

from pytuyastub._crypto.aes import aes_ecb_decrypt, aes_ecb_encrypt
from pytuyastub._crypto.hashing import frame_crc32, payload_signature

__all__ = [
    "aes_ecb_decrypt",
    "aes_ecb_encrypt",
    "frame_crc32",
    "payload_signature",
]
