import base64
import hashlib
import hmac
import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.x509.oid import NameOID

from qcsat.services.webhook_signatures import (
    decode_jws_payload_unverified,
    verify_app_store_notification,
    verify_github_signature,
    verify_hmac_signature,
    verify_jira_signature,
    verify_prefixed_hmac_signature,
    verify_rsa_signature,
    verify_timestamped_signature,
)

SECRET = "whsec-test"
BODY = b'{"ticket":{"id":42}}'


def _sign_prefixed(secret: str, timestamp: str, body: bytes) -> str:
    msg = b"v0:" + timestamp.encode() + b":" + body
    return "v0=" + hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


def _sign_timestamped(secret: str, timestamp: int, body: bytes) -> str:
    msg = f"{timestamp}.".encode() + body
    return hmac.new(secret.encode(), msg, hashlib.sha256).hexdigest()


# =============================================================================
# Prefixed HMAC (Zendesk style)
# =============================================================================

def test_prefixed_hmac_accepts_valid_signature():
    signature = _sign_prefixed(SECRET, "1700000000", BODY)
    assert verify_prefixed_hmac_signature(BODY, signature, "1700000000", SECRET)
    assert verify_prefixed_hmac_signature(BODY.decode(), signature, "1700000000", SECRET)


def test_prefixed_hmac_rejects_short_digest():
    assert verify_prefixed_hmac_signature(b"x", "v0=deadbeef", "1", SECRET) is False


@pytest.mark.parametrize(
    "signature",
    [None, "", "deadbeef", "v1=deadbeef", "v0=not-hex", "v0="],
)
def test_prefixed_hmac_rejects_malformed_signatures(signature):
    assert verify_prefixed_hmac_signature(BODY, signature, "1700000000", SECRET) is False


def test_prefixed_hmac_rejects_other_timestamp_and_secret():
    signature = _sign_prefixed(SECRET, "1700000000", BODY)
    assert not verify_prefixed_hmac_signature(BODY, signature, "1700000001", SECRET)
    assert not verify_prefixed_hmac_signature(BODY, signature, "1700000000", "other")
    assert not verify_prefixed_hmac_signature(BODY, signature, None, SECRET)


def test_prefixed_hmac_enforces_tolerance_when_given():
    signature = _sign_prefixed(SECRET, "1700000000", BODY)
    iso = "2023-11-14T22:13:20Z"

    def verify(sig, timestamp, now):
        return verify_prefixed_hmac_signature(BODY, sig, timestamp, SECRET, tolerance=300, now=now)

    assert verify(signature, "1700000000", 1700000299)
    assert not verify(signature, "1700000000", 1700000301)
    assert not verify(signature, "1700000000", 1699999000)
    assert verify(_sign_prefixed(SECRET, iso, BODY), iso, 1700000000)
    assert not verify(_sign_prefixed(SECRET, "yesterday", BODY), "yesterday", 1700000000)
    assert not verify(_sign_prefixed(SECRET, "9" * 400, BODY), "9" * 400, 1700000000)


# =============================================================================
# Timestamped HMAC (Stripe style)
# =============================================================================

def test_timestamped_signature_valid():
    now = 1_700_000_000
    header = f"t={now},v1={_sign_timestamped(SECRET, now, BODY)}"
    assert verify_timestamped_signature(BODY, header, SECRET, now=now + 10)


def test_timestamped_signature_accepts_any_matching_v1():
    now = 1_700_000_000
    header = f"t={now},v1={'0' * 64},v1={_sign_timestamped(SECRET, now, BODY)}"
    assert verify_timestamped_signature(BODY, header, SECRET, now=now)


@pytest.mark.parametrize("offset", [301, -301, 3600])
def test_timestamped_signature_rejects_outside_window(offset):
    signed_at = 1_700_000_000
    header = f"t={signed_at},v1={_sign_timestamped(SECRET, signed_at, BODY)}"
    assert not verify_timestamped_signature(BODY, header, SECRET, now=signed_at + offset)


def test_timestamped_signature_uses_wall_clock_by_default():
    now = int(time.time())
    header = f"t={now},v1={_sign_timestamped(SECRET, now, BODY)}"
    assert verify_timestamped_signature(BODY, header, SECRET)


@pytest.mark.parametrize("header", [None, "", "v1=abc", "t=abc,v1=abc", "garbage"])
def test_timestamped_signature_rejects_malformed_header(header):
    assert not verify_timestamped_signature(BODY, header, SECRET, now=1_700_000_000)


# =============================================================================
# Plain HMAC, Jira, GitHub
# =============================================================================

def test_plain_hmac_sha256_and_sha512():
    sha256 = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    sha512 = hmac.new(SECRET.encode(), BODY, hashlib.sha512).hexdigest()
    assert verify_hmac_signature(BODY, sha256, SECRET)
    assert verify_hmac_signature(BODY, sha512, SECRET, algorithm="sha512")
    assert not verify_hmac_signature(BODY, sha256, SECRET, algorithm="sha512")
    assert not verify_hmac_signature(BODY, sha256, SECRET, algorithm="md5")
    assert not verify_hmac_signature(BODY, None, SECRET)


def test_jira_and_github_signatures():
    digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert verify_jira_signature(BODY, f"sha256={digest}", SECRET)
    assert not verify_jira_signature(BODY, digest, SECRET)
    assert verify_github_signature(BODY, f"sha256={digest}", SECRET)
    assert not verify_github_signature(BODY, digest, SECRET)
    assert not verify_github_signature(BODY, "sha256=" + "0" * 64, SECRET)


# =============================================================================
# RSA (Play Store)
# =============================================================================

@pytest.fixture(scope="module")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def _public_pem(key) -> str:
    return key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


def _rsa_sign(key, body: bytes) -> str:
    return base64.b64encode(key.sign(body, padding.PKCS1v15(), hashes.SHA256())).decode()


def test_rsa_signature_with_pem_key(rsa_key):
    assert verify_rsa_signature(BODY, _rsa_sign(rsa_key, BODY), _public_pem(rsa_key))


def test_rsa_signature_with_bare_base64_key(rsa_key):
    bare = "".join(
        line for line in _public_pem(rsa_key).splitlines() if "-----" not in line
    )
    assert verify_rsa_signature(BODY, _rsa_sign(rsa_key, BODY), bare)


def test_rsa_signature_rejects_tampered_body(rsa_key):
    signature = _rsa_sign(rsa_key, BODY)
    assert not verify_rsa_signature(BODY + b" ", signature, _public_pem(rsa_key))


def test_rsa_signature_rejects_garbage(rsa_key):
    assert not verify_rsa_signature(BODY, "%%%not-base64%%%", _public_pem(rsa_key))
    assert not verify_rsa_signature(BODY, _rsa_sign(rsa_key, BODY), "not a key")
    assert not verify_rsa_signature(BODY, None, _public_pem(rsa_key))


def test_rsa_signature_rejects_non_rsa_key(rsa_key):
    ec_key = ec.generate_private_key(ec.SECP256R1())
    assert not verify_rsa_signature(BODY, _rsa_sign(rsa_key, BODY), _public_pem(ec_key))


# =============================================================================
# App Store (JWS + x5c chain)
# =============================================================================

NOW = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _name(cn: str) -> x509.Name:
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def _certificate(subject: str, public_key, issuer_name: x509.Name, issuer_key, ca: bool):
    return (
        x509.CertificateBuilder()
        .subject_name(_name(subject))
        .issuer_name(issuer_name)
        .public_key(public_key)
        .serial_number(x509.random_serial_number())
        .not_valid_before(NOW - timedelta(days=30))
        .not_valid_after(NOW + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key, hashes.SHA256())
    )


def _chain(root_cn: str = "Test Root CA"):
    root_key = ec.generate_private_key(ec.SECP256R1())
    root = _certificate(root_cn, root_key.public_key(), _name(root_cn), root_key, ca=True)
    intermediate_key = ec.generate_private_key(ec.SECP256R1())
    intermediate = _certificate(
        "Test Intermediate", intermediate_key.public_key(), root.subject, root_key, ca=True
    )
    leaf_key = ec.generate_private_key(ec.SECP256R1())
    leaf = _certificate(
        "Test Leaf", leaf_key.public_key(), intermediate.subject, intermediate_key, ca=False
    )
    return {"root": root, "intermediate": intermediate, "leaf": leaf, "leaf_key": leaf_key}


def _x5c(*certs) -> list[str]:
    return [base64.b64encode(c.public_bytes(serialization.Encoding.DER)).decode() for c in certs]


def _pem(cert) -> str:
    return cert.public_bytes(serialization.Encoding.PEM).decode()


CLAIMS = {
    "notificationType": "REVIEW",
    "data": {"review": {"id": "r-1", "rating": 4}},
}


@pytest.fixture(scope="module")
def chain():
    return _chain()


def _signed(chain, claims=CLAIMS, key=None, certs=None) -> str:
    certs = certs or (chain["leaf"], chain["intermediate"], chain["root"])
    return jwt.encode(
        claims,
        key or chain["leaf_key"],
        algorithm="ES256",
        headers={"x5c": _x5c(*certs)},
    )


def test_app_store_valid_chain_returns_claims(chain):
    result = verify_app_store_notification(_signed(chain), _pem(chain["root"]), now=NOW)
    assert result.valid
    assert result.reason is None
    assert result.payload["data"]["review"]["rating"] == 4
    assert len(result.certificates) == 3


def test_app_store_rejects_unpinned_root(chain):
    other = _chain("Other Root CA")
    result = verify_app_store_notification(_signed(chain), _pem(other["root"]), now=NOW)
    assert not result.valid
    assert result.reason == "untrusted_root"
    assert result.payload is None


def test_app_store_rejects_expired_certificate(chain):
    later = NOW + timedelta(days=400)
    result = verify_app_store_notification(_signed(chain), _pem(chain["root"]), now=later)
    assert result.reason == "certificate_expired"


def test_app_store_rejects_broken_chain(chain):
    # Same root name, different key: the intermediate was not issued by it.
    impostor = _chain("Test Root CA")
    token = _signed(chain, certs=(chain["leaf"], chain["intermediate"], impostor["root"]))
    result = verify_app_store_notification(token, _pem(impostor["root"]), now=NOW)
    assert not result.valid
    assert result.reason == "invalid_chain"


def test_app_store_rejects_signature_from_other_key(chain):
    token = _signed(chain, key=ec.generate_private_key(ec.SECP256R1()))
    result = verify_app_store_notification(token, _pem(chain["root"]), now=NOW)
    assert result.reason == "invalid_signature"


def test_app_store_rejects_short_chain(chain):
    token = _signed(chain, certs=(chain["leaf"],))
    result = verify_app_store_notification(token, _pem(chain["root"]), now=NOW)
    assert result.reason == "incomplete_chain"


def test_app_store_rejects_other_algorithms(chain):
    token = jwt.encode(CLAIMS, "shared-secret", algorithm="HS256")
    result = verify_app_store_notification(token, _pem(chain["root"]), now=NOW)
    assert result.reason == "unsupported_alg"


def test_app_store_missing_input_and_garbage(chain):
    assert verify_app_store_notification(None, _pem(chain["root"])).reason == "missing_input"
    assert verify_app_store_notification(_signed(chain), "").reason == "missing_input"
    garbage = verify_app_store_notification("a.b.c", _pem(chain["root"]), now=NOW)
    assert not garbage.valid


def test_decode_unverified_reads_claims_without_checks(chain):
    assert decode_jws_payload_unverified(_signed(chain))["notificationType"] == "REVIEW"
    assert decode_jws_payload_unverified("not-a-jws") is None
