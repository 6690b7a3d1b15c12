"""Security utilities: credential encryption and request signature checks."""

import hashlib
import hmac
import time

from cryptography.fernet import Fernet

from sentinel.core.config import get_settings
from sentinel.core.errors import ConfigurationError, SignatureVerificationError

# Slack rejects signatures older than five minutes; so do we.
SLACK_SIGNATURE_MAX_AGE_SECONDS = 300


# ── Field-level encryption (Fernet) ──────────────────────────

def _get_fernet(key: str | None = None) -> Fernet:
    key = key if key is not None else get_settings().encryption_key
    if not key:
        raise ConfigurationError("ENCRYPTION_KEY is not configured")
    return Fernet(key.encode())


def encrypt_value(plaintext: str, key: str | None = None) -> str:
    """Encrypt a string value. Returns base64 ciphertext."""
    return _get_fernet(key).encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str, key: str | None = None) -> str:
    """Decrypt a Fernet-encrypted value.

    Raises ``cryptography.fernet.InvalidToken`` if the ciphertext was tampered
    with or the key does not match.
    """
    return _get_fernet(key).decrypt(ciphertext.encode()).decode()


# ── Shared-secret comparison ─────────────────────────────────

def secrets_match(provided: str | None, expected: str) -> bool:
    """Constant-time comparison for bearer secrets."""
    if not provided or not expected:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


# ── Slack request signatures (v0) ────────────────────────────

def compute_slack_signature(secret: str, timestamp: str, body: bytes) -> str:
    base = b"v0:" + timestamp.encode() + b":" + body
    return "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()


def verify_slack_signature(
    secret: str,
    timestamp: str | None,
    signature: str | None,
    body: bytes,
    now: float | None = None,
) -> None:
    """Verify ``X-Slack-Signature`` over ``v0:{timestamp}:{body}``.

    Raises SignatureVerificationError on a missing, stale or wrong signature.
    """
    if not timestamp or not signature:
        raise SignatureVerificationError("Missing Slack signature headers")
    try:
        ts = int(timestamp)
    except ValueError as exc:
        raise SignatureVerificationError("Malformed Slack timestamp") from exc

    now = time.time() if now is None else now
    if abs(now - ts) > SLACK_SIGNATURE_MAX_AGE_SECONDS:
        raise SignatureVerificationError("Slack request timestamp is too old")

    expected = compute_slack_signature(secret, timestamp, body)
    if not hmac.compare_digest(expected, signature):
        raise SignatureVerificationError("Slack signature mismatch")
