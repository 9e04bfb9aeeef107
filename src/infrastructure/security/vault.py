# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Symmetric encryption of channel credentials at rest.

Secrets are encrypted with AES-256-CBC and PKCS7 padding. The key is the
SHA-256 digest of the configured passphrase and every call draws a fresh
16-byte IV. The stored form is ``<hex iv>:<hex ciphertext>``, which keeps
values readable by the Node.js service that shares the database.

Example:
    vault = SecretVault("my passphrase")
    stored = vault.encrypt("smtp-password")
    vault.decrypt(stored)       # "smtp-password"
    SecretVault.mask("abcdef")  # "ab**ef"
"""

import hashlib
import os
from functools import lru_cache

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

IV_LENGTH = 16
BLOCK_SIZE_BITS = 128


class DecryptionError(Exception):
    """Raised when a stored secret cannot be decrypted.

    Covers malformed envelopes as well as ciphertexts produced under a
    different key.
    """


class SecretVault:
    """Encrypts, decrypts and masks credential strings.

    Args:
        passphrase: Secret passphrase; hashed with SHA-256 to form the key.
    """

    def __init__(self, passphrase: str) -> None:
        self._key = hashlib.sha256(passphrase.encode("utf-8")).digest()

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a secret.

        Args:
            plaintext: Value to protect. Empty means "nothing configured".

        Returns:
            ``hex(iv):hex(ciphertext)``, or ``""`` for empty input.
        """
        if not plaintext:
            return ""

        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(BLOCK_SIZE_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a value produced by :meth:`encrypt`.

        Args:
            ciphertext: Stored ``iv:ciphertext`` envelope.

        Returns:
            The original plaintext, or ``""`` for empty input.

        Raises:
            DecryptionError: If the envelope is malformed or was not
                produced with this key.
        """
        if not ciphertext:
            return ""

        parts = ciphertext.split(":")
        if len(parts) != 2:
            raise DecryptionError("Encrypted value must have exactly two parts")

        try:
            iv = bytes.fromhex(parts[0])
            body = bytes.fromhex(parts[1])
        except ValueError as e:
            raise DecryptionError("Encrypted value is not valid hex") from e

        if len(iv) != IV_LENGTH:
            raise DecryptionError(f"IV must be {IV_LENGTH} bytes, got {len(iv)}")
        if not body or len(body) % IV_LENGTH:
            raise DecryptionError("Ciphertext length is not a multiple of the block size")

        decryptor = Cipher(algorithms.AES(self._key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(body) + decryptor.finalize()

        unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
        try:
            data = unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise DecryptionError("Invalid padding; wrong key or corrupt data") from e

        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted value is not valid UTF-8") from e

    @staticmethod
    def mask(secret: str) -> str:
        """Mask a secret for display.

        Keeps the first and last two characters of values longer than
        four characters; shorter values are fully masked.
        """
        if not secret:
            return ""
        if len(secret) <= 4:
            return "*" * len(secret)
        return secret[:2] + "*" * (len(secret) - 4) + secret[-2:]


@lru_cache
def get_secret_vault() -> SecretVault:
    """Get the process-wide vault keyed by the configured passphrase.

    Call ``get_secret_vault.cache_clear()`` after changing settings.
    """
    from src.core.config import get_settings

    return SecretVault(get_settings().encryption.key.get_secret_value())
