# clinicq/core/security.py
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from clinicq.core.config import settings

# =========
# Passwords
# =========

_pwd_ctx = CryptContext(
    schemes=["bcrypt_sha256", "bcrypt"],
    default="bcrypt_sha256",
    deprecated="auto",
)


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or plain_password == "":
        raise ValueError("Password must be a non-empty string")
    return _pwd_ctx.hash(plain_password)


def verify_password(plain_password: str, password_hash: Optional[str]) -> bool:
    """
    Verify a plain-text password against a stored hash.
    Accounts created through an external identity provider have no hash
    and can never log in with a password.
    """
    if not password_hash or not plain_password:
        return False
    try:
        return _pwd_ctx.verify(plain_password, password_hash)
    except ValueError:
        # Malformed or unknown hash format
        return False


# =====
# JWTs
# =====

ACCESS_TOKEN_TYPE = "access"
ALGORITHM = "HS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(
    *,
    subject: str,                # the user id (UUID as str)
    role: str,                   # "USER" | "STAFF" | "ADMIN"
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    now = _utcnow()
    exp = now + timedelta(minutes=expires_minutes or settings.ACCESS_EXPIRES_MIN)
    claims: Dict[str, Any] = {
        "sub": subject,
        "role": role,
        "type": ACCESS_TOKEN_TYPE,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
        "jti": str(uuid.uuid4()),
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=ALGORITHM)


class InvalidTokenError(Exception):
    """Raised when a token is missing/invalid/expired or claims are malformed."""


def decode_token(token: str) -> Dict[str, Any]:
    if not token:
        raise InvalidTokenError("missing_token")
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[ALGORITHM])
    except JWTError as exc:
        # expired signature, invalid signature, bad format, ...
        raise InvalidTokenError("invalid_token") from exc

    if "sub" not in payload or payload.get("type") != ACCESS_TOKEN_TYPE:
        raise InvalidTokenError("invalid_claims")
    return payload
