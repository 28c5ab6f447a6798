"""Security utilities: password hashing, API keys and JWTs."""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from jose import jwt
from passlib.context import CryptContext

from app.core.config import get_settings

settings = get_settings()

API_KEY_PREFIX = "sk-fusion-"

# ── Password hashing (Argon2) ─────────────────────────────────

pwd_context = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str | None) -> bool:
    # OAuth-only accounts have no local password
    if not hashed:
        return False
    return pwd_context.verify(plain, hashed)


# ── API keys (SHA-256, deterministic for lookups) ─────────────

def hash_api_key(raw_key: str) -> str:
    """One-way SHA-256 hash for API key storage.

    Keys are looked up by hash on every request, so the hash must be
    deterministic. The random part carries 224 bits of entropy.
    """
    return hashlib.sha256(raw_key.encode()).hexdigest()


def generate_api_key() -> str:
    """Generate a new ``sk-fusion-`` key with 28 random bytes in hex."""
    return API_KEY_PREFIX + secrets.token_hex(28)


def mask_api_key(prefix: str, suffix: str) -> str:
    return f"{prefix}...{suffix}"


# ── JWT ───────────────────────────────────────────────────────

def create_jwt(subject: str, role: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.jwt_expire_minutes)
    )
    payload = {
        "sub": subject,
        "role": role,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jose.JWTError on failure."""
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
