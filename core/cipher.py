"""
core/cipher.py -- Reversible protection of stored system credentials.

Algorithm: AES-256-CBC with PKCS7 padding (cryptography hazmat primitives).
Each call to encrypt() draws a fresh 16-byte IV from os.urandom, so the same
plaintext never produces the same envelope twice.

Envelope format: "<iv hex>:<ciphertext hex>". This is the only form a system
password is ever persisted in.

Failure policy:
  encrypt() raises nothing for valid str input; empty input yields None.
  decrypt() never raises. A malformed envelope, a truncated ciphertext, bad
  padding, or a key mismatch all return None, and callers treat None as
  "secret unavailable", not as an empty string.

The key is injected (CredentialCipher(settings.encryption_key)) rather than
read from a module global. Length is validated in the constructor and again
in core.config.Settings, so a bad key stops the process at startup.
"""

from __future__ import annotations

import logging
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger("credvault.cipher")

_KEY_BYTES = 32
_IV_BYTES = 16
_BLOCK_BITS = 128


class CredentialCipher:
    """Symmetric encrypt/decrypt of credential secrets with a fixed key.

    Usage:
        cipher = CredentialCipher(get_settings().encryption_key)
        envelope = cipher.encrypt("s3cret")   # "9f1c...:7a2b..."
        cipher.decrypt(envelope)              # "s3cret"
    """

    def __init__(self, key: str) -> None:
        if key is None or len(key) != _KEY_BYTES:
            raise ValueError(f"Encryption key must be exactly {_KEY_BYTES} characters long.")
        raw = key.encode("utf-8")
        if len(raw) != _KEY_BYTES:
            # Multi-byte characters would silently change the AES variant.
            raise ValueError(f"Encryption key must encode to exactly {_KEY_BYTES} bytes (use ASCII characters).")
        self._key = raw

    def encrypt(self, plaintext: str | None) -> str | None:
        """Return an "iv:ciphertext" hex envelope, or None for empty input."""
        if not plaintext:
            return None
        iv = os.urandom(_IV_BYTES)
        padder = padding.PKCS7(_BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, envelope: str | None) -> str | None:
        """Return the plaintext for a valid envelope, None on any failure."""
        if not envelope:
            return None
        iv_hex, sep, cipher_hex = envelope.partition(":")
        if not sep or not cipher_hex:
            logger.warning("Decryption skipped: malformed credential envelope")
            return None
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(cipher_hex)
            if len(iv) != _IV_BYTES:
                raise ValueError("bad IV length")
            decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()
            unpadder = padding.PKCS7(_BLOCK_BITS).unpadder()
            plain = unpadder.update(padded) + unpadder.finalize()
            return plain.decode("utf-8")
        except ValueError as exc:
            # UnicodeDecodeError is a ValueError subclass, so a key mismatch
            # that happens to unpad cleanly still lands here.
            logger.warning("Decryption failed: %s", exc)
            return None
