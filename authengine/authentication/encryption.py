"""
Encryption of directory credentials at rest.

Uses Fernet (AES-128-CBC with HMAC) with a key derived from the configured
master key. Supports key rotation via MultiFernet.

Environment variables:
- CREDENTIAL_MASTER_KEY: Primary encryption key (required in production)
- CREDENTIAL_MASTER_KEY_PREVIOUS: Previous key for rotation (optional)
"""

import base64
import hashlib
from typing import Any, Optional, Union

from cryptography.fernet import Fernet, InvalidToken, MultiFernet
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from authengine.core.config import settings as app_settings


REDACTED = "[REDACTED]"

# Fields that never leave the engine in clear text (audit, logs, reads)
SENSITIVE_FIELDS = frozenset({"bind_password", "test_password"})


class CredentialEncryptionError(Exception):
    """Base exception for credential encryption errors."""
    pass


class EncryptionKeyError(CredentialEncryptionError):
    """Raised when there's an issue with the encryption key."""
    pass


class DecryptionError(CredentialEncryptionError):
    """Raised when decryption fails."""
    pass


def _derive_fernet_key(master_key: str) -> bytes:
    """
    Derive a Fernet-compatible key from a master key.

    Uses PBKDF2 with SHA256 and a fixed salt so the same master key yields
    the same Fernet key across restarts.
    """
    if len(master_key) < 32:
        raise EncryptionKeyError("Master key must be at least 32 characters")

    salt = hashlib.sha256(b"authengine-credential-salt").digest()[:16]
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(master_key.encode()))


class CredentialEncryption:
    """
    Handles encryption/decryption of directory bind passwords.
    """

    def __init__(
        self,
        primary_key: Optional[str] = None,
        previous_key: Optional[str] = None,
    ):
        self._primary_key = primary_key or app_settings.credential.master_key
        self._previous_key = previous_key or app_settings.credential.master_key_previous or None

        if not self._primary_key:
            raise EncryptionKeyError("CREDENTIAL_MASTER_KEY must be set")

        self._fernet = self._create_fernet()

    def _create_fernet(self) -> Union[Fernet, MultiFernet]:
        """Create Fernet or MultiFernet instance with available keys."""
        primary = Fernet(_derive_fernet_key(self._primary_key))
        if self._previous_key:
            # MultiFernet tries keys in order: primary first, then previous
            return MultiFernet([primary, Fernet(_derive_fernet_key(self._previous_key))])
        return primary

    def encrypt(self, value: str) -> bytes:
        if value is None:
            raise CredentialEncryptionError("Cannot encrypt None value")
        return self._fernet.encrypt(value.encode("utf-8"))

    def decrypt(self, encrypted: Optional[bytes]) -> str:
        """Decrypt to string; an absent secret decrypts to the empty string."""
        if not encrypted:
            return ""
        try:
            return self._fernet.decrypt(encrypted).decode("utf-8")
        except InvalidToken:
            raise DecryptionError(
                "Decryption failed: Invalid token. "
                "The data may be corrupted or encrypted with a different key."
            )

    def encrypt_optional(self, value: str) -> Optional[bytes]:
        """Empty passwords are stored as NULL."""
        return self.encrypt(value) if value else None


def redact_sensitive_fields(data: dict) -> dict:
    """
    Redact sensitive fields in a dictionary for logging/audit.

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]"
    """
    result: dict[str, Any] = {}
    for key, value in data.items():
        result[key] = REDACTED if key in SENSITIVE_FIELDS else value
    return result
