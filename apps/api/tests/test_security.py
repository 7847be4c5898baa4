import pytest
from cryptography.fernet import Fernet

from qcsat.core import encryption
from qcsat.core.config import settings
from qcsat.core.security import (
    API_KEY_PREFIX,
    generate_api_key,
    generate_token,
    generate_url_safe_token,
    hash_password,
    sha256,
    verify_password,
    verify_secret,
)


def test_verify_secret():
    assert verify_secret("abc", "abc") is True
    assert verify_secret("abc", "def") is False
    assert verify_secret(None, "abc") is False
    assert verify_secret("abc", None) is False
    assert verify_secret("", "abc") is False


def test_password_hashing():
    hashed = hash_password("correct horse")

    assert hashed.startswith("$2")
    assert verify_password(hashed, "correct horse")
    assert not verify_password(hashed, "wrong")
    assert not verify_password("not-a-bcrypt-hash", "correct horse")


def test_generate_api_key():
    api_key = generate_api_key()

    assert api_key["key"].startswith(f"{API_KEY_PREFIX}{api_key['prefix']}_")
    assert len(api_key["prefix"]) == 6
    assert api_key["hash"] == sha256(api_key["key"])
    assert generate_api_key()["key"] != api_key["key"]


def test_generate_token_length():
    assert len(generate_token()) == 64
    assert len(generate_token(8)) == 16
    assert "=" not in generate_url_safe_token()


# =============================================================================
# Credential encryption
# =============================================================================

def test_encrypt_decrypt_roundtrip():
    encrypted = encryption.encrypt_token("oauth-access-token")

    assert encrypted != "oauth-access-token"
    assert encryption.decrypt_token(encrypted) == "oauth-access-token"
    assert encryption.encrypt_token("") == ""
    assert encryption.decrypt_token(None) == ""


def test_decrypt_garbage_raises():
    with pytest.raises(ValueError):
        encryption.decrypt_token("not-a-fernet-token")
    with pytest.raises(ValueError):
        encryption.rotate_token("not-a-fernet-token")


def test_missing_key_raises(monkeypatch):
    monkeypatch.setattr(settings, "CREDENTIALS_ENCRYPTION_KEY", "")

    assert not encryption.is_encryption_configured()
    with pytest.raises(RuntimeError):
        encryption.encrypt_token("secret")


def test_previous_key_still_decrypts_and_rotates(monkeypatch):
    old_key = settings.CREDENTIALS_ENCRYPTION_KEY
    encrypted = encryption.encrypt_token("webhook-secret")

    monkeypatch.setattr(settings, "CREDENTIALS_ENCRYPTION_KEY", Fernet.generate_key().decode())
    monkeypatch.setattr(settings, "CREDENTIALS_ENCRYPTION_KEY_PREVIOUS", old_key)

    assert encryption.decrypt_token(encrypted) == "webhook-secret"
    rotated = encryption.rotate_token(encrypted)

    monkeypatch.setattr(settings, "CREDENTIALS_ENCRYPTION_KEY_PREVIOUS", "")
    assert encryption.decrypt_token(rotated) == "webhook-secret"
    with pytest.raises(ValueError):
        encryption.decrypt_token(encrypted)


# =============================================================================
# Hashing
# =============================================================================

def test_hash_respondent_id():
    first = encryption.hash_respondent_id("user-123")

    assert first == encryption.hash_respondent_id("user-123")
    assert len(first) == encryption.RESPONDENT_HASH_LENGTH
    assert first != encryption.hash_respondent_id("user-124")
    assert first != encryption.hash_respondent_id("user-123", salt="other-salt")


def test_hash_respondent_id_requires_salt(monkeypatch):
    monkeypatch.setattr(settings, "RESPONDENT_HASH_SALT", "")

    with pytest.raises(RuntimeError):
        encryption.hash_respondent_id("user-123")


def test_keyed_hash_depends_on_key_and_purpose():
    value = encryption.keyed_hash("a@example.com", "key-1")

    assert value == encryption.keyed_hash("a@example.com", "key-1")
    assert value != encryption.keyed_hash("a@example.com", "key-2")
    assert value != encryption.keyed_hash("a@example.com", "key-1", purpose="dedupe")
