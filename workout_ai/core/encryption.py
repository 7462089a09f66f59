"""Credential vault for per-user vendor API keys.

Keys are encrypted at rest with AES-256-GCM. Every encryption draws a fresh
salt and nonce; the AES key is derived from the master secret and the salt
with PBKDF2-HMAC-SHA256, so a leaked ciphertext is useless without the
master secret.

Payload layout (base64 encoded): salt(16) || nonce(12) || tag(16) || ciphertext
"""

from __future__ import annotations

import base64
import binascii
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from loguru import logger

from workout_ai.config.settings import settings
from workout_ai.core.errors import ConfigurationError, WorkoutAIError

SALT_LENGTH = 16
NONCE_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
PBKDF2_ITERATIONS = 100_000

_HEADER_LENGTH = SALT_LENGTH + NONCE_LENGTH + TAG_LENGTH


class EncryptionError(WorkoutAIError):
    """Raised when encryption/decryption operations fail."""

    code = "ENCRYPTION_ERROR"
    category = "input"


class DecryptionError(EncryptionError):
    """Raised when a stored payload cannot be decrypted.

    Covers malformed payloads and authentication tag mismatches, which
    usually means the master secret changed since the key was stored.
    """

    code = "DECRYPTION_ERROR"


class CredentialVault:
    """Symmetric AEAD encryption of vendor API keys under a master secret."""

    def __init__(self, master_secret: str, iterations: int = PBKDF2_ITERATIONS) -> None:
        if not master_secret:
            raise ConfigurationError(
                "Encryption secret is not configured. Set ENCRYPTION_SECRET to store API keys."
            )
        self._secret = master_secret.encode("utf-8")
        self._iterations = iterations

    def _derive_key(self, salt: bytes) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_LENGTH,
            salt=salt,
            iterations=self._iterations,
        )
        return kdf.derive(self._secret)

    def encrypt(self, plaintext: str) -> str:
        """Encrypt a UTF-8 string.

        Args:
            plaintext: Value to protect (e.g., a vendor API key)

        Returns:
            Base64 payload bundling salt, nonce, auth tag and ciphertext
        """
        salt = os.urandom(SALT_LENGTH)
        nonce = os.urandom(NONCE_LENGTH)
        key = self._derive_key(salt)

        # AESGCM appends the tag to the ciphertext; the payload stores it up front
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]

        return base64.b64encode(salt + nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, payload: str) -> str:
        """Decrypt a payload produced by encrypt().

        Args:
            payload: Base64 payload

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionError: If the payload is malformed or fails authentication
        """
        try:
            combined = base64.b64decode(payload.encode("ascii"), validate=True)
        except (binascii.Error, ValueError, UnicodeEncodeError) as e:
            raise DecryptionError("Encrypted payload is not valid base64") from e

        if len(combined) < _HEADER_LENGTH:
            raise DecryptionError(
                f"Encrypted payload is too short ({len(combined)} bytes, need at least {_HEADER_LENGTH})"
            )

        salt = combined[:SALT_LENGTH]
        nonce = combined[SALT_LENGTH : SALT_LENGTH + NONCE_LENGTH]
        tag = combined[SALT_LENGTH + NONCE_LENGTH : _HEADER_LENGTH]
        ciphertext = combined[_HEADER_LENGTH:]

        key = self._derive_key(salt)
        try:
            plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as e:
            logger.error(
                "Credential decryption failed: authentication tag mismatch. "
                "This usually means ENCRYPTION_SECRET has changed since the key was stored; "
                "the user will need to re-enter their API key."
            )
            raise DecryptionError("Stored credential failed authentication") from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError("Decrypted credential is not valid UTF-8") from e

    def verify(self, plaintext: str, payload: str) -> bool:
        """Check that payload decrypts back to plaintext."""
        try:
            return self.decrypt(payload) == plaintext
        except DecryptionError:
            return False


@lru_cache(maxsize=1)
def get_vault() -> CredentialVault:
    """Get the process-wide vault built from settings."""
    return CredentialVault(settings.vault_secret)
