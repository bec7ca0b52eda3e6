"""AES-256-CBC payload cipher for auth request and response bodies."""
import json
import os
from typing import Any, Dict

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from storefront.core.exceptions import EnvelopeError

IV_LENGTH = 16  # AES block size in bytes


class PayloadCipher:
    """Encrypts JSON payloads into hex ``iv``/``encryptedData`` pairs and back."""

    def __init__(self, key: str):
        key_bytes = key.encode("utf-8")
        if len(key_bytes) != 32:
            raise ValueError("Encryption key must be 32 bytes for AES-256-CBC")
        self._key = key_bytes

    def _cipher(self, iv: bytes) -> Cipher:
        return Cipher(algorithms.AES(self._key), modes.CBC(iv))

    def encrypt(self, data: Any) -> Dict[str, str]:
        """Encrypt a JSON-serializable object with a fresh random IV."""
        iv = os.urandom(IV_LENGTH)
        plaintext = json.dumps(data, separators=(",", ":")).encode("utf-8")

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(plaintext) + padder.finalize()

        encryptor = self._cipher(iv).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return {"iv": iv.hex(), "encryptedData": ciphertext.hex()}

    def decrypt(self, iv_hex: str, encrypted_hex: str) -> Any:
        """Decrypt a hex encoded payload and parse it as JSON."""
        try:
            iv = bytes.fromhex(iv_hex)
            ciphertext = bytes.fromhex(encrypted_hex)

            decryptor = self._cipher(iv).decryptor()
            padded = decryptor.update(ciphertext) + decryptor.finalize()

            unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return json.loads(plaintext.decode("utf-8"))
        except (ValueError, UnicodeDecodeError) as e:
            raise EnvelopeError(f"Could not decrypt payload: {e}") from e
