"""
LogiFlow Security Utilities

Encryption for stored integration credentials, JWT handling, and webhook
signature verification.
"""

import base64
import hashlib
import hmac
import json
from datetime import datetime, timedelta
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from jose import JWTError, jwt

from core.config import DEFAULT_ENCRYPTION_KEY, get_settings

settings = get_settings()

# Fernet encryption for integration credentials
# Dev key must be deterministic so the API process and Celery workers share it.
if settings.encryption_key == DEFAULT_ENCRYPTION_KEY:
    _dev_key = base64.urlsafe_b64encode(hashlib.sha256(b"logiflow-dev-key-not-for-production").digest())
    _fernet = Fernet(_dev_key)
else:
    _fernet = Fernet(settings.encryption_key.encode())


def encrypt(plaintext: str) -> str:
    """Encrypt sensitive data (API keys, basic-auth pairs)."""
    return _fernet.encrypt(plaintext.encode()).decode()


def decrypt(ciphertext: str) -> str:
    """Decrypt sensitive data."""
    return _fernet.decrypt(ciphertext.encode()).decode()


def encrypt_credentials(credentials: dict[str, Any]) -> str:
    return encrypt(json.dumps(credentials, sort_keys=True))


def decrypt_credentials(ciphertext: str) -> dict[str, Any] | None:
    """Return the stored credential payload, or None if it cannot be decrypted."""
    try:
        payload = json.loads(decrypt(ciphertext))
    except (InvalidToken, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


# ── JWT ────────────────────────────────────────────────────────────────────


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Create a JWT access token."""
    runtime_settings = get_settings()
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(hours=24))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, runtime_settings.jwt_secret, algorithm=runtime_settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a bearer token. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
        )
    except JWTError:
        return None
    if not payload.get("sub"):
        return None
    return payload


# ── Webhook signatures ─────────────────────────────────────────────────────


def compute_webhook_signature(raw_body: bytes, secret: str) -> str:
    """base64(HMAC-SHA256(raw_body, secret)), the format WooCommerce sends."""
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_webhook_signature(raw_body: bytes, signature: str | None, secret: str) -> bool:
    """
    Verify a webhook signature against the raw, unparsed request body.

    The body must be the exact bytes received: re-serialized JSON changes the
    byte layout and therefore the digest.
    """
    if not signature:
        return False
    expected = compute_webhook_signature(raw_body, secret)
    return hmac.compare_digest(signature.strip().encode("utf-8"), expected.encode("ascii"))
