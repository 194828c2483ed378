"""
Seed Super Admin User

Creates the initial super admin staff account for the registry.
Credentials come from the environment; run once after migrating.

Usage:
    cd apps/api
    SEED_ADMIN_EMAIL=admin@eacz.co.zw SEED_ADMIN_PASSWORD=... \
        python scripts/seed_super_admin.py

Optional: SEED_ADMIN_FIRST_NAME, SEED_ADMIN_LAST_NAME
"""

import asyncio
import os
import sys

from sqlalchemy import select

from eacz_registry.core.database import async_session_maker, close_db
from eacz_registry.core.security import hash_password
from eacz_registry.modules.users.models import User, UserRole


async def seed_super_admin() -> int:
    """Create the super admin user if it doesn't exist."""
    email = os.getenv("SEED_ADMIN_EMAIL", "").strip().lower()
    password = os.getenv("SEED_ADMIN_PASSWORD", "")
    first_name = os.getenv("SEED_ADMIN_FIRST_NAME", "Council")
    last_name = os.getenv("SEED_ADMIN_LAST_NAME", "Administrator")

    if not email or not password:
        print("SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")
        return 1
    if len(password) < 12:
        print("SEED_ADMIN_PASSWORD must be at least 12 characters")
        return 1

    try:
        async with async_session_maker() as db:
            result = await db.execute(select(User).where(User.email == email))
            existing_user = result.scalar_one_or_none()

            if existing_user:
                print(f"Super admin already exists: {email}")
                print(f"  ID: {existing_user.id}")
                print(f"  Role: {existing_user.role.value}")
                return 0

            admin_user = User(
                email=email,
                password_hash=hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=UserRole.SUPER_ADMIN,
                is_active=True,
            )

            db.add(admin_user)
            await db.commit()
            await db.refresh(admin_user)

            print("Super admin created successfully!")
            print(f"  Email: {email}")
            print(f"  Name: {first_name} {last_name}")
            print(f"  ID: {admin_user.id}")
    finally:
        await close_db()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(seed_super_admin()))
