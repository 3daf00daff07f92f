"""
auth/tokens.py -- Password hashing, session JWTs, and the session cookie.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Every hash gets a
       fresh salt from bcrypt.gensalt(); the salt and cost are embedded in the
       stored string, so verification needs nothing else. The cost factor
       comes from Settings.bcrypt_rounds.

  JWT: python-jose with HS256. A session token carries only user_id, iat and
       exp -- enough for a stateless verifier on later requests. Tokens are
       never stored server-side. Every login and registration mints a fresh
       one that expires AUTH_TOKEN_EXPIRES_SECONDS after issue.

  Cookie: the token travels in the httpOnly "session" cookie whose max_age
       equals the token lifetime so both expire together.

  SECRET_KEY: sourced from core.config.get_settings() once at import and never
       rotated for the life of the process.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

from core.config import get_settings

logger = logging.getLogger("cadgate.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# Sessions expire after 5 hours.
AUTH_TOKEN_EXPIRES_MS = 60 * 60 * 1000 * 5
AUTH_TOKEN_EXPIRES_SECONDS = AUTH_TOKEN_EXPIRES_MS // 1000

SESSION_COOKIE = "session"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Passwords longer than 72 bytes are truncated by bcrypt. The request
    schema caps passwords at 255 characters; the truncation is applied here
    explicitly so bcrypt 4.x never rejects an over-long input.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8")[:72], salt).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A missing or malformed hash is reported as a mismatch, never raised.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_session_token(
    user_id: int,
    expire_seconds: int = AUTH_TOKEN_EXPIRES_SECONDS,
    issued_at: datetime | None = None,
) -> str:
    """Encode a signed session JWT bound to user_id.

    Args:
        user_id:        Account the session belongs to.
        expire_seconds: Token lifetime. exp is always iat + expire_seconds.
        issued_at:      Issue time; defaults to now (UTC).
    """
    now = issued_at or datetime.now(timezone.utc)
    payload = {
        "user_id": user_id,
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_session_token(token: str) -> dict | None:
    """Decode and verify a session JWT. Returns the payload dict or None on any failure.

    Returning None (rather than raising) keeps the caller simple: any invalid
    or expired token is treated as unauthenticated.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("user_id"), int):
        return None
    return payload


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, expire_seconds: int = AUTH_TOKEN_EXPIRES_SECONDS) -> None:
    """Write the session JWT as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST (CSRF mitigation).
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: Starlette takes seconds; pass the same value used for the token.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="lax",
        secure=_settings.secure_cookies,
        max_age=expire_seconds,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
