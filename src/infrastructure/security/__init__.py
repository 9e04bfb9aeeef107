# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Security primitives: credential encryption at rest."""

from src.infrastructure.security.vault import DecryptionError, SecretVault, get_secret_vault

__all__ = ["DecryptionError", "SecretVault", "get_secret_vault"]
