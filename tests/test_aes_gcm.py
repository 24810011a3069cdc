import pytest

from application.ports.secrets import SecretDecryptionError
from infrastructure.external.secrets import AesGcmSecretCipher, encrypt_secret

KEY = "00112233445566778899aabbccddeeff" * 2


def test_encrypted_secret_round_trips():
    encrypted = encrypt_secret("whsec_live_123", KEY)

    assert encrypted.count(":") == 2
    assert "whsec_live_123" not in encrypted
    assert AesGcmSecretCipher(KEY).decrypt(encrypted) == "whsec_live_123"


def test_fresh_iv_per_encryption():
    assert encrypt_secret("same", KEY) != encrypt_secret("same", KEY)


def test_tampered_ciphertext_fails_authentication():
    iv, tag, ciphertext = encrypt_secret("whsec_live_123", KEY).split(":")
    flipped = format(int(ciphertext[:2], 16) ^ 0x01, "02x") + ciphertext[2:]

    with pytest.raises(SecretDecryptionError):
        AesGcmSecretCipher(KEY).decrypt(f"{iv}:{tag}:{flipped}")


def test_wrong_key_fails_authentication():
    encrypted = encrypt_secret("whsec_live_123", KEY)

    with pytest.raises(SecretDecryptionError):
        AesGcmSecretCipher("ff" * 32).decrypt(encrypted)


@pytest.mark.parametrize("value", ["plain", "a:b", "zz:yy:xx", "00:00:00"])
def test_malformed_values_are_rejected(value):
    with pytest.raises(SecretDecryptionError):
        AesGcmSecretCipher(KEY).decrypt(value)


def test_without_key_secrets_pass_through():
    assert AesGcmSecretCipher().decrypt("whsec_dev") == "whsec_dev"


@pytest.mark.parametrize("key", ["abcd", "not-hex" * 10])
def test_invalid_keys_are_rejected(key):
    with pytest.raises(ValueError):
        AesGcmSecretCipher(key)


def test_cipher_encrypts_what_it_decrypts():
    cipher = AesGcmSecretCipher(KEY)

    encrypted = cipher.encrypt("whsec_rotated")

    assert "whsec_rotated" not in encrypted
    assert cipher.decrypt(encrypted) == "whsec_rotated"


def test_without_key_encrypt_passes_through():
    assert AesGcmSecretCipher().encrypt("whsec_dev") == "whsec_dev"
