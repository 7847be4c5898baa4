"""Security utilities: password hashing, random tokens and API keys."""

import hashlib
import hmac
import secrets

import bcrypt

from qcsat.core.config import settings


API_KEY_PREFIX = "qk_"


# =============================================================================
# Passwords
# =============================================================================

def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    salt = bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password_hash: str, password: str) -> bool:
    """Verify a password against a stored hash. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# =============================================================================
# Tokens
# =============================================================================

def generate_token(length: int = 32) -> str:
    """Generate a random hex token (length bytes of entropy)."""
    return secrets.token_hex(length)


def generate_url_safe_token(length: int = 32) -> str:
    """Generate a URL-safe base64 token (length bytes of entropy)."""
    return secrets.token_urlsafe(length)


def sha256(value: str) -> str:
    """SHA-256 hex digest for non-password data such as API keys."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def generate_api_key() -> dict[str, str]:
    """
    Generate an API key.

    Format: qk_<prefix 6 chars>_<secret>. Only the hash is stored; the
    prefix is kept for display.
    """
    prefix = generate_url_safe_token(4)[:6]
    secret = generate_url_safe_token(24)
    key = f"{API_KEY_PREFIX}{prefix}_{secret}"
    return {"key": key, "prefix": prefix, "hash": sha256(key)}


def verify_secret(provided: str | None, expected: str | None) -> bool:
    """Constant-time comparison of a provided secret against the expected one."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
