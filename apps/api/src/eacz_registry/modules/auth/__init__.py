"""Staff authentication module."""

from eacz_registry.modules.auth.router import router
from eacz_registry.modules.auth.schemas import LoginRequest, LoginResponse, TokenResponse

__all__ = ["router", "LoginRequest", "LoginResponse", "TokenResponse"]
