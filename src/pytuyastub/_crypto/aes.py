"""AES-128-ECB encryption for Tuya 3.1 payloads.

Protocol 3.1 encrypts control and status payloads with the device's local
key in ECB mode (no IV). Identical plaintext blocks therefore produce
identical ciphertext blocks; the device and every client rely on that, so
the mode is reproduced as-is.
"""

from __future__ import annotations

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pytuyastub._constants import AES_BLOCK_SIZE
from pytuyastub.exceptions import DecryptionError, StubCryptoError


def _check_key(key: bytes) -> None:
    if len(key) != 16:
        raise StubCryptoError(f"AES key must be 16 bytes (got {len(key)})")


def aes_ecb_encrypt(plaintext: bytes, key: bytes) -> bytes:
    """AES-128-ECB encrypt with PKCS#7 padding.

    Parameters
    ----------
    plaintext : bytes
        Data to encrypt. May be empty (a full padding block is produced).
    key : bytes
        16-byte key.

    Returns
    -------
    bytes
        Ciphertext, a non-zero multiple of 16 bytes long.

    Raises
    ------
    StubCryptoError
        If the key is invalid or encryption fails.
    """
    _check_key(key)
    try:
        padder = padding.PKCS7(AES_BLOCK_SIZE * 8).padder()
        padded = padder.update(plaintext) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key), modes.ECB()).encryptor()  # noqa: S305
        return encryptor.update(padded) + encryptor.finalize()
    except Exception as exc:
        raise StubCryptoError(f"AES encryption failed: {exc}") from exc


def aes_ecb_decrypt(ciphertext: bytes, key: bytes) -> bytes:
    """AES-128-ECB decrypt and strip PKCS#7 padding.

    Parameters
    ----------
    ciphertext : bytes
        Data to decrypt.
    key : bytes
        16-byte key.

    Returns
    -------
    bytes
        Plaintext.

    Raises
    ------
    DecryptionError
        If the ciphertext is empty, not block aligned, or its padding is
        malformed (typically a wrong key).
    """
    _check_key(key)
    if not ciphertext or len(ciphertext) % AES_BLOCK_SIZE != 0:
        raise DecryptionError(
            f"Ciphertext length must be a non-zero multiple of {AES_BLOCK_SIZE} (got {len(ciphertext)})"
        )
    try:
        decryptor = Cipher(algorithms.AES(key), modes.ECB()).decryptor()  # noqa: S305
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(AES_BLOCK_SIZE * 8).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as exc:
        raise DecryptionError(f"AES decryption failed: {exc}") from exc
