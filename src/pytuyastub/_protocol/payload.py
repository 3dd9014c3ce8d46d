"""Payload serialization and the 3.1 encryption envelope.

Encrypted payloads look like::

    b"3.1" + signature(16 hex chars) + base64(AES-ECB(json))
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from typing import Any

from pytuyastub._constants import SIGNATURE_SIZE, VERSION_31_BYTES
from pytuyastub._crypto.aes import aes_ecb_decrypt, aes_ecb_encrypt
from pytuyastub._crypto.hashing import payload_signature
from pytuyastub.exceptions import DecryptionError, MalformedFrameError
from pytuyastub.models._base import CommandType

#: Commands whose non-empty payloads are encrypted under protocol 3.1.
ENCRYPTED_COMMANDS: frozenset[int] = frozenset({CommandType.CONTROL, CommandType.STATUS})


def serialize_payload(data: dict[str, Any] | None) -> bytes:
    """Compact, insertion-ordered JSON; ``b""`` for an empty payload."""
    if not data:
        return b""
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def encrypt_envelope(plaintext: bytes, key: bytes) -> bytes:
    """Wrap *plaintext* in the signed 3.1 envelope."""
    encoded = base64.b64encode(aes_ecb_encrypt(plaintext, key))
    return VERSION_31_BYTES + payload_signature(encoded, VERSION_31_BYTES, key) + encoded


def decrypt_envelope(payload: bytes, key: bytes) -> bytes:
    """Verify and unwrap a 3.1 envelope.

    Raises
    ------
    MalformedFrameError
        If the payload does not start with the version tag.
    DecryptionError
        If the signature, base64 text or ciphertext is invalid.
    """
    if not payload.startswith(VERSION_31_BYTES):
        raise MalformedFrameError("Encrypted payload is missing the 3.1 version tag")
    offset = len(VERSION_31_BYTES)
    signature = payload[offset : offset + SIGNATURE_SIZE]
    encoded = payload[offset + SIGNATURE_SIZE :]
    if not hmac.compare_digest(signature, payload_signature(encoded, VERSION_31_BYTES, key)):
        raise DecryptionError("Payload signature mismatch")
    try:
        ciphertext = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise DecryptionError(f"Encrypted payload is not valid base64: {exc}") from exc
    return aes_ecb_decrypt(ciphertext, key)


def encode_payload(command: int, data: dict[str, Any] | None, key: bytes) -> bytes:
    """Serialize *data* and encrypt it when *command* requires it."""
    raw = serialize_payload(data)
    if raw and command in ENCRYPTED_COMMANDS:
        return encrypt_envelope(raw, key)
    return raw


def decode_payload(command: int, payload: bytes, key: bytes) -> dict[str, Any] | None:
    """Decrypt (when needed) and parse a frame payload.

    Raises
    ------
    MalformedFrameError
        If an encrypted command arrives in clear text or the payload is not
        a JSON object.
    DecryptionError
        If the envelope cannot be decrypted.
    """
    if not payload:
        return None
    if command in ENCRYPTED_COMMANDS or payload.startswith(VERSION_31_BYTES):
        payload = decrypt_envelope(payload, key)

    try:
        parsed = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedFrameError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedFrameError(f"Payload must be a JSON object, got {type(parsed).__name__}")
    return parsed
