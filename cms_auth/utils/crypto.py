"""
Encryption of 2FA material at rest.

AES-256-GCM with a key derived from the server passphrase by scrypt.
Payloads are stored as text: "<hex iv>:<hex ciphertext+tag>".
"""

import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from cms_auth.core.exceptions import DecryptionError

logger = logging.getLogger(__name__)

IV_LENGTH = 12  # 96-bit nonce for GCM
KEY_LENGTH = 32


def derive_key(passphrase: str, salt: str) -> bytes:
    """Derive a 32-byte AES key from a passphrase (scrypt, n=2**14, r=8, p=1)"""
    kdf = Scrypt(salt=salt.encode("utf-8"), length=KEY_LENGTH, n=2 ** 14, r=8, p=1)
    return kdf.derive(passphrase.encode("utf-8"))


class SecretCipher:
    """
    Symmetric encryption for small secrets (TOTP seeds, backup-code bundles).

    The key is derived once per instance. A fresh random IV is drawn for
    every encrypt call, so equal secrets never produce equal ciphertexts.
    """

    def __init__(self, passphrase: str, salt: str = "salt"):
        """
        Initialize secret encryption.

        Args:
            passphrase: Server-held 2FA encryption passphrase
            salt: KDF salt

        Raises:
            ValueError: If passphrase is empty
        """
        if not passphrase:
            raise ValueError("2FA encryption passphrase is required")

        # Never log key material
        self.cipher = AESGCM(derive_key(passphrase, salt))
        logger.debug("2FA secret encryption initialized")

    def encrypt(self, plaintext: str) -> str:
        """
        Encrypt a secret.

        Args:
            plaintext: Secret to encrypt

        Returns:
            "hexIV:hexCiphertext"
        """
        iv = os.urandom(IV_LENGTH)
        ciphertext = self.cipher.encrypt(iv, plaintext.encode("utf-8"), None)
        return f"{iv.hex()}:{ciphertext.hex()}"

    def decrypt(self, payload: str) -> str:
        """
        Decrypt a secret produced by encrypt().

        Args:
            payload: "hexIV:hexCiphertext"

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionError: Malformed payload, wrong key or tampered data
        """
        if not payload or payload.count(":") != 1:
            raise DecryptionError("Encrypted payload is malformed")

        iv_hex, ciphertext_hex = payload.split(":", 1)
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError:
            raise DecryptionError("Encrypted payload is malformed")

        if len(iv) != IV_LENGTH or not ciphertext:
            raise DecryptionError("Encrypted payload is malformed")

        try:
            plaintext = self.cipher.decrypt(iv, ciphertext, None)
        except InvalidTag:
            raise DecryptionError("Encrypted payload failed authentication (wrong key or corrupted data)")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionError("Decrypted payload is not valid text")
