"""
AES-256-GCM 密钥加解密

密文格式：``iv:tag:ciphertext``（均为十六进制）。未配置加密密钥时按明文透传，
便于本地开发。
"""
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from application.ports.secrets import SecretDecryptionError
from core.logging_config import get_logger


logger = get_logger(__name__)

_IV_BYTES = 12
_TAG_BYTES = 16


def _load_key(hex_key: str) -> bytes:
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as e:
        raise ValueError("Encryption key must be hex encoded") from e
    if len(key) != 32:
        raise ValueError("Encryption key must be 32 bytes (64 hex characters)")
    return key


def _seal(key: bytes, plaintext: str, iv: Optional[bytes] = None) -> str:
    iv = iv or os.urandom(_IV_BYTES)
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    # cryptography 将 tag 附在密文末尾
    ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
    return f"{iv.hex()}:{tag.hex()}:{ciphertext.hex()}"


def encrypt_secret(plaintext: str, hex_key: str, iv: Optional[bytes] = None) -> str:
    """加密密钥，返回 iv:tag:ciphertext"""
    return _seal(_load_key(hex_key), plaintext, iv)


class AesGcmSecretCipher:
    """SecretEncryptor / SecretDecryptor 的 AES-GCM 实现；未配置密钥时加解密均为透传"""

    def __init__(self, hex_key: Optional[str] = None):
        self._key = _load_key(hex_key) if hex_key else None
        if self._key is None:
            logger.warning("webhook_secret_encryption_disabled")

    def encrypt(self, plaintext: str) -> str:
        if self._key is None:
            return plaintext
        return _seal(self._key, plaintext)

    def decrypt(self, encrypted: str) -> str:
        if self._key is None:
            return encrypted

        parts = encrypted.split(":")
        if len(parts) != 3:
            raise SecretDecryptionError("Malformed encrypted secret")
        try:
            iv, tag, ciphertext = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise SecretDecryptionError("Encrypted secret is not hex encoded") from e
        if len(iv) != _IV_BYTES or len(tag) != _TAG_BYTES:
            raise SecretDecryptionError("Malformed encrypted secret")

        try:
            plaintext = AESGCM(self._key).decrypt(iv, ciphertext + tag, None)
        except InvalidTag as e:
            raise SecretDecryptionError("Encrypted secret failed authentication") from e
        return plaintext.decode("utf-8")
