"""
Tests for bind password encryption and redaction.
"""

import pytest

from authengine.authentication.encryption import (
    REDACTED,
    CredentialEncryption,
    DecryptionError,
    EncryptionKeyError,
    redact_sensitive_fields,
)

KEY = "first-master-key-of-at-least-32-characters"
NEW_KEY = "second-master-key-of-at-least-32-characters"


class TestCredentialEncryption:

    def test_round_trip(self):
        encryption = CredentialEncryption(KEY)
        token = encryption.encrypt("s3cret")
        assert token != b"s3cret"
        assert encryption.decrypt(token) == "s3cret"

    def test_empty_password_is_not_stored(self):
        encryption = CredentialEncryption(KEY)
        assert encryption.encrypt_optional("") is None
        assert encryption.decrypt(None) == ""

    def test_key_rotation(self):
        token = CredentialEncryption(KEY).encrypt("s3cret")
        assert CredentialEncryption(NEW_KEY, previous_key=KEY).decrypt(token) == "s3cret"

    def test_wrong_key(self):
        token = CredentialEncryption(KEY).encrypt("s3cret")
        with pytest.raises(DecryptionError):
            CredentialEncryption(NEW_KEY).decrypt(token)

    def test_short_key(self):
        with pytest.raises(EncryptionKeyError):
            CredentialEncryption("too-short")


def test_redact_sensitive_fields():
    assert redact_sensitive_fields({"host": "ldap", "bind_password": "x", "test_password": "y"}) == {
        "host": "ldap",
        "bind_password": REDACTED,
        "test_password": REDACTED,
    }
