"""
Webhook signature verification for third-party providers.

Every verifier returns a plain bool (or a result object for App Store
notifications) and never raises: malformed headers, bad encodings and crypto
failures are all treated as "not authentic". Digest comparisons are constant
time.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import textwrap
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import jwt
from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)

DEFAULT_TIMESTAMP_TOLERANCE_SECONDS = 300
_HMAC_ALGORITHMS = {"sha256": hashlib.sha256, "sha512": hashlib.sha512}


def _to_bytes(value: bytes | str) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _compare(expected: str, provided: str) -> bool:
    # compare_digest only accepts ASCII str, so compare as bytes.
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


# =============================================================================
# HMAC schemes
# =============================================================================

def _parse_signed_at(timestamp: str) -> float | None:
    """Unix seconds or an ISO 8601 instant (Zendesk sends the latter)."""
    if timestamp.isascii() and timestamp.isdigit():
        return float(timestamp)
    try:
        parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def verify_prefixed_hmac_signature(
    payload: bytes | str,
    signature: str | None,
    timestamp: str | None,
    secret: str,
    tolerance: int | None = None,
    now: float | None = None,
) -> bool:
    """
    Verify a ``v0=<hex>`` signature over ``v0:{timestamp}:{payload}``.

    The hex digests are decoded before comparison; a digest of the wrong
    length is rejected without comparing. With ``tolerance`` set, a timestamp
    further than that many seconds from now, or one that cannot be parsed,
    is rejected.
    """
    if not signature or not timestamp or not secret:
        return False
    if not signature.startswith("v0="):
        return False

    if tolerance is not None:
        signed_at = _parse_signed_at(timestamp)
        if signed_at is None:
            return False
        current = time.time() if now is None else now
        if abs(current - signed_at) > tolerance:
            logger.warning("Prefixed signature timestamp outside tolerance window")
            return False

    try:
        provided = bytes.fromhex(signature[3:])
    except ValueError:
        logger.warning("Prefixed HMAC signature is not valid hex")
        return False

    message = b"v0:" + timestamp.encode("utf-8") + b":" + _to_bytes(payload)
    expected = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    if len(provided) != len(expected):
        return False
    return hmac.compare_digest(expected, provided)


def _parse_timestamped_header(header: str) -> tuple[str | None, list[str]]:
    timestamp = None
    signatures = []
    for part in header.split(","):
        key, sep, value = part.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            timestamp = value
        elif key == "v1":
            signatures.append(value)
    return timestamp, signatures


def verify_timestamped_signature(
    payload: bytes | str,
    header: str | None,
    secret: str,
    tolerance: int = DEFAULT_TIMESTAMP_TOLERANCE_SECONDS,
    now: float | None = None,
) -> bool:
    """
    Verify a ``t=<unix>,v1=<hex>`` header (Stripe style).

    Signed message is ``{t}.{payload}``. Timestamps further than
    ``tolerance`` seconds from now, in either direction, are rejected.
    """
    if not header or not secret:
        return False

    timestamp, signatures = _parse_timestamped_header(header)
    if not timestamp or not signatures:
        return False
    try:
        signed_at = int(timestamp)
    except ValueError:
        return False

    current = time.time() if now is None else now
    if abs(current - signed_at) > tolerance:
        logger.warning("Timestamped signature outside tolerance window")
        return False

    message = timestamp.encode("utf-8") + b"." + _to_bytes(payload)
    expected = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()
    return any(_compare(expected, candidate) for candidate in signatures)


def verify_hmac_signature(
    payload: bytes | str,
    signature: str | None,
    secret: str,
    algorithm: str = "sha256",
) -> bool:
    """Plain hex HMAC of the payload (sha256 or sha512)."""
    digestmod = _HMAC_ALGORITHMS.get(algorithm)
    if digestmod is None or not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), _to_bytes(payload), digestmod).hexdigest()
    return _compare(expected, signature)


def verify_jira_signature(payload: bytes | str, signature: str | None, secret: str) -> bool:
    """Jira sends ``sha256=<hex>``; the whole header is compared."""
    if not signature or not secret:
        return False
    expected = hmac.new(secret.encode("utf-8"), _to_bytes(payload), hashlib.sha256).hexdigest()
    return _compare(f"sha256={expected}", signature)


def verify_github_signature(payload: bytes | str, signature: str | None, secret: str) -> bool:
    """GitHub ``X-Hub-Signature-256``: ``sha256=`` prefix, hex digest."""
    if not signature or not signature.startswith("sha256="):
        return False
    return verify_hmac_signature(payload, signature[len("sha256="):], secret, "sha256")


# =============================================================================
# Play Store (RSA-SHA256)
# =============================================================================

def _to_pem_public_key(public_key: str) -> bytes:
    key = public_key.strip()
    if "-----BEGIN" in key:
        return key.encode("utf-8")
    body = "\n".join(textwrap.wrap("".join(key.split()), 64))
    return f"-----BEGIN PUBLIC KEY-----\n{body}\n-----END PUBLIC KEY-----\n".encode("utf-8")


def verify_rsa_signature(
    message: bytes | str,
    signature_b64: str | None,
    public_key: str,
) -> bool:
    """
    Verify a base64 RSA-SHA256 (PKCS#1 v1.5) signature.

    ``public_key`` may be PEM or the bare base64 SubjectPublicKeyInfo that
    the Play Console shows.
    """
    if not signature_b64 or not public_key:
        return False
    try:
        key = serialization.load_pem_public_key(_to_pem_public_key(public_key))
        if not isinstance(key, rsa.RSAPublicKey):
            logger.warning("Play store public key is not an RSA key")
            return False
        signature = base64.b64decode(signature_b64, validate=True)
        key.verify(signature, _to_bytes(message), padding.PKCS1v15(), hashes.SHA256())
        return True
    except InvalidSignature:
        return False
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        logger.warning("RSA signature verification error: %s", type(exc).__name__)
        return False


# =============================================================================
# App Store Server Notifications (JWS with x5c chain)
# =============================================================================

@dataclass
class AppStoreVerification:
    valid: bool
    payload: dict[str, Any] | None = None
    reason: str | None = None
    certificates: list[x509.Certificate] = field(default_factory=list, repr=False)


def _load_root_certificate(root_certificate_pem: str | bytes) -> x509.Certificate:
    return x509.load_pem_x509_certificate(_to_bytes(root_certificate_pem))


def _within_validity(cert: x509.Certificate, now: datetime) -> bool:
    return cert.not_valid_before_utc <= now <= cert.not_valid_after_utc


def verify_app_store_notification(
    signed_payload: str | None,
    root_certificate_pem: str | bytes | None,
    now: datetime | None = None,
) -> AppStoreVerification:
    """
    Verify an App Store signedPayload and return its claims.

    Checks, in order: ES256 header with an x5c chain of at least two
    certificates; every certificate inside its validity window; each
    certificate directly issued by the next; the last certificate identical
    to the pinned root; the JWS signature under the leaf key. The payload is
    only returned when all checks pass.
    """
    if not signed_payload or not root_certificate_pem:
        return AppStoreVerification(valid=False, reason="missing_input")

    now = now or datetime.now(timezone.utc)
    try:
        header = jwt.get_unverified_header(signed_payload)
        if header.get("alg") != "ES256":
            return AppStoreVerification(valid=False, reason="unsupported_alg")

        chain = header.get("x5c") or []
        if len(chain) < 2:
            return AppStoreVerification(valid=False, reason="incomplete_chain")
        certificates = [
            x509.load_der_x509_certificate(base64.b64decode(cert)) for cert in chain
        ]

        for cert in certificates:
            if not _within_validity(cert, now):
                return AppStoreVerification(valid=False, reason="certificate_expired")

        for child, issuer in zip(certificates, certificates[1:]):
            child.verify_directly_issued_by(issuer)

        root = _load_root_certificate(root_certificate_pem)
        if certificates[-1].fingerprint(hashes.SHA256()) != root.fingerprint(hashes.SHA256()):
            return AppStoreVerification(valid=False, reason="untrusted_root")

        payload = jwt.decode(
            signed_payload,
            key=certificates[0].public_key(),
            algorithms=["ES256"],
            options={"verify_aud": False},
        )
    except InvalidSignature:
        logger.warning("App Store certificate chain signature invalid")
        return AppStoreVerification(valid=False, reason="invalid_chain")
    except jwt.PyJWTError as exc:
        logger.warning("App Store JWS rejected: %s", type(exc).__name__)
        return AppStoreVerification(valid=False, reason="invalid_signature")
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        logger.warning("App Store notification malformed: %s", type(exc).__name__)
        return AppStoreVerification(valid=False, reason="malformed")

    return AppStoreVerification(valid=True, payload=payload, certificates=certificates)


def decode_jws_payload_unverified(token: str) -> dict[str, Any] | None:
    """
    Decode JWS claims WITHOUT checking the signature.

    Untrusted: for display and debugging only. Use
    verify_app_store_notification before acting on a notification.
    """
    try:
        return jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
