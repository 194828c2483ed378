"""
Security Utilities

Password hashing (bcrypt via passlib) and JWT creation/decoding (python-jose).
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt
from passlib.context import CryptContext

from eacz_registry.core.config import settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _encode(claims: dict[str, Any], expires_delta: timedelta) -> str:
    to_encode = dict(claims)
    to_encode["exp"] = datetime.now(UTC) + expires_delta
    to_encode["iat"] = datetime.now(UTC)
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(
    subject: str,
    additional_claims: dict[str, Any] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a staff access token."""
    claims = {"sub": subject, "type": "access", **(additional_claims or {})}
    return _encode(
        claims,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(subject: str) -> str:
    """Create a staff refresh token."""
    return _encode(
        {"sub": subject, "type": "refresh"},
        timedelta(days=settings.refresh_token_expire_days),
    )


def create_applicant_token(
    subject: str,
    email: str,
    application_id: str | None = None,
    applicant_id: str | None = None,
) -> str:
    """
    Create a token for a public applicant.

    The token is scoped to a single application and/or applicant record and
    is never accepted on staff endpoints.
    """
    claims: dict[str, Any] = {"sub": subject, "type": "applicant", "email": email}
    if application_id:
        claims["application_id"] = application_id
    if applicant_id:
        claims["applicant_id"] = applicant_id
    return _encode(claims, timedelta(minutes=settings.applicant_token_expire_minutes))


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and validate a JWT.

    Returns:
        The claims dict, or None if the signature is invalid or the token expired.
    """
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
