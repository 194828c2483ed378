"""
Authentication and Authorization Module

Provides authentication dependencies for FastAPI endpoints.

Two kinds of bearer tokens are accepted:
- Staff access tokens (type "access") carrying a council role claim
- Applicant tokens (type "applicant") scoped to one application and/or
  applicant record, issued on application start, OTP verification and
  applicant login

SECURITY NOTE:
- Development mode auth bypass is ONLY enabled when PYTHON_ENV=development
- Applicant tokens are never accepted on staff endpoints
"""

import logging
import os
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from eacz_registry.core.config import settings
from eacz_registry.core.security import decode_token

logger = logging.getLogger(__name__)

# Security scheme for OpenAPI documentation
security = HTTPBearer(
    auto_error=False,
    description="JWT Bearer token for authentication",
)

# ============================================
# Roles
# ============================================

ADMIN_ROLES: frozenset[str] = frozenset({"admin", "super_admin"})

STAFF_ROLES: frozenset[str] = ADMIN_ROLES | frozenset(
    {"member_manager", "case_manager", "staff", "accountant", "reviewer"}
)


@dataclass
class StaffUser:
    """
    Represents an authenticated council staff user.

    Attributes:
        id: User's unique identifier (UUID)
        email: User's email address
        role: One of STAFF_ROLES
        name: User's display name (optional)
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def __str__(self) -> str:
        return f"StaffUser(id={self.id}, email={self.email}, role={self.role})"


@dataclass
class ApplicantPrincipal:
    """
    A public applicant authenticated with an applicant token.

    Attributes:
        email: Applicant email the token was issued for
        application_id: Human-readable application ID the token grants access to
        applicant_id: Human-readable applicant ID the token grants access to
    """

    email: str
    application_id: str | None = None
    applicant_id: str | None = None

    def owns_application(self, application_id: str) -> bool:
        return self.application_id is not None and self.application_id == application_id

    def owns_applicant(self, applicant_id: str) -> bool:
        return self.applicant_id is not None and self.applicant_id == applicant_id


def _is_dev_mode_safe() -> bool:
    """
    Check if development mode is safe to enable.

    Both the parsed settings and the raw PYTHON_ENV variable must agree
    that this is a development environment.
    """
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = StaffUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@eacz.dev",
    role="super_admin",
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _forbidden(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail={"error": error, "message": message},
    )


def _decode_or_401(token: str) -> dict:
    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")
    return payload


def _staff_from_claims(payload: dict) -> StaffUser:
    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        return StaffUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


def _applicant_from_claims(payload: dict) -> ApplicantPrincipal:
    email = payload.get("email")
    if not email or not (payload.get("application_id") or payload.get("applicant_id")):
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.")
    return ApplicantPrincipal(
        email=email,
        application_id=payload.get("application_id"),
        applicant_id=payload.get("applicant_id"),
    )


def _dev_token_user(token: str) -> StaffUser | None:
    if not _DEVELOPMENT_MODE:
        return None

    if token in ("dev-token", "test-token"):
        logger.debug("Development mode: Using test token")
        return _DEV_ADMIN

    try:
        user_id = UUID(token)
    except ValueError:
        return None
    return StaffUser(
        id=user_id,
        email=f"admin-{str(user_id)[:8]}@eacz.dev",
        role="super_admin",
        name="Test Admin",
    )


def resolve_token(token: str) -> StaffUser | ApplicantPrincipal:
    """
    Validate a bearer token and return the principal it represents.

    Raises:
        HTTPException 401: If the token is invalid, expired or of an unknown type
    """
    dev_user = _dev_token_user(token)
    if dev_user is not None:
        return dev_user

    payload = _decode_or_401(token)
    token_type = payload.get("type", "access")

    if token_type == "access":
        return _staff_from_claims(payload)
    if token_type == "applicant":
        return _applicant_from_claims(payload)

    logger.warning(f"Invalid token type: {token_type}")
    raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")


def _require_credentials(
    credentials: HTTPAuthorizationCredentials | None,
) -> str:
    if credentials is None or not credentials.credentials:
        raise _unauthorized("AUTHENTICATION_REQUIRED", "Authentication is required.")
    return credentials.credentials


# ============================================
# Staff dependencies
# ============================================


async def get_current_staff_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> StaffUser:
    """
    FastAPI dependency that validates the JWT token and returns the staff user.

    Raises:
        HTTPException 401: If token is missing, invalid, or expired
        HTTPException 403: If the token is not a staff token with a staff role
    """
    principal = resolve_token(_require_credentials(credentials))

    if not isinstance(principal, StaffUser):
        raise _forbidden("STAFF_ACCESS_REQUIRED", "Council staff access is required.")

    if principal.role not in STAFF_ROLES:
        logger.warning(
            f"Access denied: User {principal.id} has role '{principal.role}', "
            "which is not a staff role"
        )
        raise _forbidden("STAFF_ACCESS_REQUIRED", "Council staff access is required.")

    logger.debug(f"Authenticated staff user: {principal.id}")
    return principal


def require_roles(*roles: Iterable[str] | str) -> Callable:
    """
    Build a dependency that only admits staff users holding one of ``roles``.

    Accepts role names and/or role sets:

        require_roles(ADMIN_ROLES)
        require_roles("accountant", "super_admin")
    """
    allowed: set[str] = set()
    for role in roles:
        if isinstance(role, str):
            allowed.add(role)
        else:
            allowed.update(role)

    async def dependency(user: StaffUser = Depends(get_current_staff_user)) -> StaffUser:
        if user.role not in allowed:
            logger.warning(
                f"Access denied: User {user.id} has role '{user.role}', "
                f"required one of {sorted(allowed)}"
            )
            raise _forbidden(
                "INSUFFICIENT_ROLE",
                "You do not have permission to perform this action.",
            )
        return user

    return dependency


# ============================================
# Applicant dependencies
# ============================================


async def get_optional_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> StaffUser | ApplicantPrincipal | None:
    """Return the caller if a valid token is provided, or None if no token."""
    if credentials is None or not credentials.credentials:
        return None
    return resolve_token(credentials.credentials)


async def get_application_caller(
    application_id: str,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> StaffUser | ApplicantPrincipal:
    """
    Resolve a caller allowed to act on ``application_id``.

    Staff users may act on any application. Applicants may only act on the
    application their token was issued for.

    Raises:
        HTTPException 401: If no valid token is provided
        HTTPException 403: If the applicant token belongs to another application
    """
    principal = resolve_token(_require_credentials(credentials))

    if isinstance(principal, StaffUser):
        if principal.role not in STAFF_ROLES:
            raise _forbidden("STAFF_ACCESS_REQUIRED", "Council staff access is required.")
        return principal

    if not principal.owns_application(application_id):
        logger.warning(f"Applicant token does not grant access to application {application_id}")
        raise _forbidden(
            "APPLICATION_ACCESS_DENIED",
            "You do not have access to this application.",
        )
    return principal


async def get_applicant_caller(
    applicant_id: str,
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> StaffUser | ApplicantPrincipal:
    """Resolve a caller allowed to act on the applicant record ``applicant_id``."""
    principal = resolve_token(_require_credentials(credentials))

    if isinstance(principal, StaffUser):
        if principal.role not in STAFF_ROLES:
            raise _forbidden("STAFF_ACCESS_REQUIRED", "Council staff access is required.")
        return principal

    if not principal.owns_applicant(applicant_id):
        raise _forbidden(
            "APPLICANT_ACCESS_DENIED",
            "You do not have access to this applicant record.",
        )
    return principal


def caller_actor_id(caller: StaffUser | ApplicantPrincipal | None) -> str | None:
    """Actor reference recorded in status history for ``caller``."""
    if isinstance(caller, StaffUser):
        return str(caller.id)
    if isinstance(caller, ApplicantPrincipal):
        return caller.email
    return None


__all__ = [
    "ADMIN_ROLES",
    "STAFF_ROLES",
    "StaffUser",
    "ApplicantPrincipal",
    "resolve_token",
    "get_current_staff_user",
    "require_roles",
    "get_optional_principal",
    "get_application_caller",
    "get_applicant_caller",
    "caller_actor_id",
]
