"""
Secret ports: encryption when endpoint secrets are stored, decryption when deliveries are signed.
"""
from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable


class SecretDecryptionError(Exception):
    """Raised when an encrypted webhook secret cannot be decrypted."""


@runtime_checkable
class SecretEncryptor(Protocol):
    """Seals a plaintext webhook secret for storage."""

    def encrypt(self, plaintext: str) -> str: ...


@runtime_checkable
class SecretDecryptor(Protocol):
    def decrypt(self, encrypted: str) -> str: ...


@runtime_checkable
class SecretCachePort(Protocol):
    """Process-local cache of decrypted secrets keyed by ciphertext."""

    def get_or_load(self, encrypted: str, loader: Callable[[str], str]) -> str: ...

    def invalidate(self, encrypted: str) -> bool: ...
