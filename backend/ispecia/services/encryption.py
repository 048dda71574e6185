"""
Symmetric encryption for stored credentials (mailbox passwords, VoIP secrets).

Values are sealed with AES-GCM and serialized as ``v1:<urlsafe base64>`` of
nonce + ciphertext. The key is the SHA-256 digest of ENCRYPTION_KEY, falling
back to SECRET_KEY.
"""
import base64
import binascii
import hashlib
import logging
import os
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ispecia.core.config import settings

logger = logging.getLogger(__name__)

TOKEN_PREFIX = "v1:"
NONCE_SIZE = 12


class EncryptionError(Exception):
    """Raised when a value cannot be encrypted or decrypted."""


class EncryptionService:
    def __init__(self, secret: Optional[str] = None):
        raw = secret or settings.ENCRYPTION_KEY or settings.SECRET_KEY
        self._key = hashlib.sha256(raw.encode("utf-8")).digest()

    def encrypt(self, text: str) -> str:
        if text is None:
            raise EncryptionError("Nothing to encrypt")
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = AESGCM(self._key).encrypt(nonce, text.encode("utf-8"), None)
        payload = base64.urlsafe_b64encode(nonce + ciphertext).decode("ascii").rstrip("=")
        return f"{TOKEN_PREFIX}{payload}"

    def decrypt(self, token: str) -> str:
        if not token:
            raise EncryptionError("Nothing to decrypt")
        raw = token[len(TOKEN_PREFIX):] if token.startswith(TOKEN_PREFIX) else token
        padded = raw + "=" * (-len(raw) % 4)
        try:
            blob = base64.urlsafe_b64decode(padded.encode("ascii"))
        except (binascii.Error, UnicodeError, ValueError) as exc:
            raise EncryptionError("Invalid encrypted value encoding") from exc
        if len(blob) <= NONCE_SIZE:
            raise EncryptionError("Invalid encrypted value")
        try:
            plaintext = AESGCM(self._key).decrypt(blob[:NONCE_SIZE], blob[NONCE_SIZE:], None)
        except InvalidTag as exc:
            logger.warning("Decryption failed: authentication tag mismatch")
            raise EncryptionError("Failed to decrypt data") from exc
        return plaintext.decode("utf-8")


encryption_service = EncryptionService()
