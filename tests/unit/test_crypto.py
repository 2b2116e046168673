"""
Unit tests for SecretCipher (2FA material encryption)
"""

import pytest

from cms_auth.core.exceptions import DecryptionError
from cms_auth.utils.crypto import IV_LENGTH, SecretCipher, derive_key


class TestSecretCipher:
    """Test encryption at rest"""

    def test_decrypt_returns_original(self, cipher):
        secret = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"

        assert cipher.decrypt(cipher.encrypt(secret)) == secret

    def test_payload_format(self, cipher):
        """Stored form is hex IV, colon, hex ciphertext"""
        payload = cipher.encrypt("secret")
        iv_hex, ciphertext_hex = payload.split(":")

        assert len(bytes.fromhex(iv_hex)) == IV_LENGTH
        # plaintext + 16-byte GCM tag
        assert len(bytes.fromhex(ciphertext_hex)) == len("secret") + 16

    def test_fresh_iv_per_encryption(self, cipher):
        assert cipher.encrypt("same secret") != cipher.encrypt("same secret")

    def test_wrong_key_fails(self, cipher):
        payload = cipher.encrypt("secret")
        other = SecretCipher("a-different-passphrase")

        with pytest.raises(DecryptionError):
            other.decrypt(payload)

    def test_wrong_salt_fails(self, settings):
        payload = SecretCipher(settings.TWOFA_ENCRYPTION_KEY, salt="one").encrypt("secret")

        with pytest.raises(DecryptionError):
            SecretCipher(settings.TWOFA_ENCRYPTION_KEY, salt="two").decrypt(payload)

    def test_tampered_ciphertext_fails(self, cipher):
        iv_hex, ciphertext_hex = cipher.encrypt("secret").split(":")
        flipped = format(int(ciphertext_hex[0], 16) ^ 1, "x") + ciphertext_hex[1:]

        with pytest.raises(DecryptionError):
            cipher.decrypt(f"{iv_hex}:{flipped}")

    @pytest.mark.parametrize("payload", [
        "",
        "no-separator",
        "a:b:c",
        "zz:zz",
        "00:00",
        "000000000000000000000000:",
    ])
    def test_malformed_payloads(self, cipher, payload):
        with pytest.raises(DecryptionError):
            cipher.decrypt(payload)

    def test_empty_passphrase_rejected(self):
        with pytest.raises(ValueError):
            SecretCipher("")

    def test_key_derivation_is_deterministic(self):
        assert derive_key("passphrase", "salt") == derive_key("passphrase", "salt")
        assert len(derive_key("passphrase", "salt")) == 32
        assert derive_key("passphrase", "salt") != derive_key("passphrase", "pepper")
