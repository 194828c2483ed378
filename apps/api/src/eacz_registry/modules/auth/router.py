"""Staff authentication router."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from eacz_registry.core.auth import StaffUser, get_current_staff_user
from eacz_registry.core.database import get_db
from eacz_registry.core.email import mask_email
from eacz_registry.core.security import (
    create_access_token,
    create_refresh_token,
    decode_token,
    verify_password,
)
from eacz_registry.modules.auth.schemas import (
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    TokenResponse,
    UserResponse,
)
from eacz_registry.modules.users.models import User
from eacz_registry.modules.users.repository import UserRepository

logger = logging.getLogger(__name__)

router = APIRouter()

_INVALID_CREDENTIALS = {
    "error": "INVALID_CREDENTIALS",
    "message": "Invalid email or password.",
}


def _issue_tokens(user: User) -> tuple[str, str]:
    additional_claims = {
        "email": user.email,
        "role": user.role.value,
        "name": user.full_name,
    }
    access_token = create_access_token(subject=str(user.id), additional_claims=additional_claims)
    refresh_token = create_refresh_token(subject=str(user.id))
    return access_token, refresh_token


@router.post("/login", response_model=LoginResponse)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> LoginResponse:
    """
    Authenticate a staff user and return JWT tokens.

    Raises:
        HTTPException 401: Invalid credentials
        HTTPException 403: Account inactive
    """
    user = await UserRepository.get_by_email(db, credentials.email)

    if not user or not verify_password(credentials.password, user.password_hash):
        logger.warning(f"Failed login attempt for {mask_email(credentials.email)}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=_INVALID_CREDENTIALS)

    if not user.is_active:
        logger.warning(f"Login attempt for inactive account {user.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ACCOUNT_INACTIVE",
                "message": "Your account has been deactivated.",
            },
        )

    access_token, refresh_token = _issue_tokens(user)
    await UserRepository.record_login(db, user.id)

    logger.info(f"User logged in: {user.id} (role: {user.role.value})")

    return LoginResponse(
        access_token=access_token,
        refresh_token=refresh_token,
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role.value,
            is_active=user.is_active,
        ),
    )


@router.post("/refresh", response_model=TokenResponse)
async def refresh(
    request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    """Exchange a refresh token for a new token pair."""
    payload = decode_token(request.refresh_token)
    if not payload or payload.get("type") != "refresh":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_TOKEN", "message": "Invalid or expired refresh token."},
        )

    user = await UserRepository.get_by_id(db, payload["sub"])
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "INVALID_TOKEN", "message": "Invalid or expired refresh token."},
        )

    access_token, refresh_token = _issue_tokens(user)
    return TokenResponse(access_token=access_token, refresh_token=refresh_token)


@router.get("/me", response_model=UserResponse)
async def me(
    staff: StaffUser = Depends(get_current_staff_user),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Return the authenticated staff user."""
    user = await UserRepository.get_by_id(db, staff.id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "USER_NOT_FOUND", "message": "User not found."},
        )
    return UserResponse(
        id=str(user.id),
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        role=user.role.value,
        is_active=user.is_active,
    )
