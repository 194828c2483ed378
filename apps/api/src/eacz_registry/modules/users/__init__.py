"""
Users module - Council staff accounts.
"""

from eacz_registry.modules.users.models import User, UserRole
from eacz_registry.modules.users.repository import UserRepository

__all__ = ["User", "UserRole", "UserRepository"]
