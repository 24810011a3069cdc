"""Webhook 密钥加解密适配器"""
from .aes_gcm import AesGcmSecretCipher, encrypt_secret

__all__ = ["AesGcmSecretCipher", "encrypt_secret"]
