"""Staff credentials: bcrypt password hashes and signed bearer tokens"""
import hashlib
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from domain.value_objects import utc_now
from infrastructure.config import settings

BCRYPT_MAX_BYTES = 72

password_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__ident="2b"
)


def _bcrypt_input(password: str) -> str:
    """Passwords past bcrypt's byte limit are reduced to their SHA256 hex digest"""
    encoded = password.encode("utf-8")
    if len(encoded) > BCRYPT_MAX_BYTES:
        return hashlib.sha256(encoded).hexdigest()
    return password


def hash_password(password: str) -> str:
    return password_context.hash(_bcrypt_input(password))


def verify_password(password: str, password_hash: str) -> bool:
    return password_context.verify(_bcrypt_input(password), password_hash)


def create_access_token(
    subject: str,
    role: str,
    expires_in: Optional[timedelta] = None,
    now: Optional[datetime] = None
) -> str:
    """
    Signed token naming the staff user and their role.
    Lifetime defaults to ACCESS_TOKEN_EXPIRE_MINUTES.
    """
    issued_at = now or utc_now()
    lifetime = expires_in or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {
        "sub": subject,
        "role": role,
        "iat": issued_at,
        "exp": issued_at + lifetime,
    }
    return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Verified claims, or None for a malformed, forged or expired token"""
    try:
        claims = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return claims
