"""Encryption utilities for stored integration credentials."""

import hashlib
import hmac

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from qcsat.core.config import settings


_fernet: MultiFernet | None = None
_fernet_keys: tuple[str, ...] = ()

RESPONDENT_HASH_LENGTH = 32


def get_fernet() -> MultiFernet:
    """
    Get or create the credentials cipher.

    The current key encrypts; current and previous keys both decrypt, so
    secrets can be rotated without downtime.
    """
    global _fernet, _fernet_keys
    keys = tuple(settings.credentials_keys)
    if not keys:
        raise RuntimeError(
            "CREDENTIALS_ENCRYPTION_KEY not configured. "
            'Generate with: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"'
        )
    if _fernet is None or keys != _fernet_keys:
        _fernet = MultiFernet([Fernet(key.encode()) for key in keys])
        _fernet_keys = keys
    return _fernet


def encrypt_token(token: str | None) -> str:
    """Encrypt a token or secret for storage."""
    if not token:
        return ""
    return get_fernet().encrypt(token.encode()).decode()


def decrypt_token(encrypted: str | None) -> str:
    """Decrypt a stored token."""
    if not encrypted:
        return ""
    try:
        return get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted token")


def rotate_token(encrypted: str | None) -> str:
    """Re-encrypt a stored token under the current key."""
    if not encrypted:
        return ""
    try:
        return get_fernet().rotate(encrypted.encode()).decode()
    except InvalidToken:
        raise ValueError("Invalid or corrupted encrypted token")


def hash_respondent_id(identifier: str, salt: str | None = None) -> str:
    """
    Hash a respondent identifier for anonymization.

    Deterministic for a given salt, so the same respondent maps to the same
    value across events without storing the raw identifier.
    """
    salt = salt if salt is not None else settings.RESPONDENT_HASH_SALT
    if not salt:
        raise RuntimeError("RESPONDENT_HASH_SALT not configured.")
    data = f"{identifier}:{salt}".encode()
    return hashlib.sha256(data).hexdigest()[:RESPONDENT_HASH_LENGTH]


def keyed_hash(value: str, key: str, purpose: str = "lookup") -> str:
    """HMAC a value for lookups and uniqueness checks."""
    data = f"{purpose}:{value}".encode()
    return hmac.new(key.encode(), data, hashlib.sha256).hexdigest()


def is_encryption_configured() -> bool:
    """Check if credential encryption is configured."""
    return bool(settings.CREDENTIALS_ENCRYPTION_KEY)
