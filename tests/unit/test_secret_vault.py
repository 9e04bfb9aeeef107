# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the secret vault."""

import pytest

from src.infrastructure.security.vault import DecryptionError, SecretVault


class TestEncrypt:
    """Tests for SecretVault.encrypt."""

    def test_envelope_format(self, vault: SecretVault) -> None:
        stored = vault.encrypt("app-password")

        iv_hex, body_hex = stored.split(":")
        assert len(bytes.fromhex(iv_hex)) == 16
        assert len(bytes.fromhex(body_hex)) % 16 == 0

    def test_fresh_iv_per_call(self, vault: SecretVault) -> None:
        assert vault.encrypt("same") != vault.encrypt("same")

    def test_empty_input(self, vault: SecretVault) -> None:
        assert vault.encrypt("") == ""

    def test_plaintext_not_in_output(self, vault: SecretVault) -> None:
        assert "app-password" not in vault.encrypt("app-password")


class TestDecrypt:
    """Tests for SecretVault.decrypt."""

    @pytest.mark.parametrize("secret", ["x", "app-password", "ünïcödé ✓", "a" * 100])
    def test_recovers_plaintext(self, vault: SecretVault, secret: str) -> None:
        assert vault.decrypt(vault.encrypt(secret)) == secret

    def test_empty_input(self, vault: SecretVault) -> None:
        assert vault.decrypt("") == ""

    def test_same_passphrase_interoperates(self, vault: SecretVault) -> None:
        other = SecretVault("test-passphrase-for-unit-tests")

        assert other.decrypt(vault.encrypt("shared")) == "shared"

    def test_wrong_key_does_not_reveal_plaintext(self, vault: SecretVault) -> None:
        stored = vault.encrypt("app-password")
        other = SecretVault("another-passphrase")

        try:
            result = other.decrypt(stored)
        except DecryptionError:
            return
        assert result != "app-password"

    @pytest.mark.parametrize(
        "stored",
        [
            "garbage",
            "a:b:c",
            "zz:00",
            "00112233:00112233445566778899aabbccddeeff",
            "00112233445566778899aabbccddeeff:0011",
            "00112233445566778899aabbccddeeff:",
        ],
    )
    def test_malformed_raises(self, vault: SecretVault, stored: str) -> None:
        with pytest.raises(DecryptionError):
            vault.decrypt(stored)


class TestMask:
    """Tests for SecretVault.mask."""

    @pytest.mark.parametrize(
        ("secret", "expected"),
        [
            ("", ""),
            ("abc", "***"),
            ("abcd", "****"),
            ("abcdef", "ab**ef"),
            ("password123", "pa*******23"),
        ],
    )
    def test_mask(self, secret: str, expected: str) -> None:
        assert SecretVault.mask(secret) == expected
