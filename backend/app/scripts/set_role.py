#!/usr/bin/env python
"""Set or clear the admin/gift role on a profile.

Usage:
  python -m app.scripts.set_role user@example.com                   # admin
  python -m app.scripts.set_role user@example.com --remove          # back to user
  python -m app.scripts.set_role user@example.com --gift            # gift
  python -m app.scripts.set_role user@example.com --gift --remove   # back to user

Both roles bypass the subscription gate; gift users get Pro features.
"""
from __future__ import annotations

import argparse
import asyncio
import logging
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import database
from app.models.enums import UserRole
from app.models.tables import Profile
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


def role_for(gift: bool, remove: bool) -> UserRole:
    if remove:
        return UserRole.USER
    return UserRole.GIFT if gift else UserRole.ADMIN


async def set_role(db: AsyncSession, email: str, role: UserRole) -> Optional[Profile]:
    """Apply ``role`` to the profile with ``email``; ``None`` if there is no such profile."""
    result = await db.execute(select(Profile).where(Profile.email == email))
    profile = result.scalars().first()
    if profile is None:
        return None
    profile.role = role
    profile.updated_at = utcnow()
    await db.commit()
    return profile


async def _run(email: str, role: UserRole) -> int:
    try:
        async with database.AsyncSessionLocal() as session:
            profile = await set_role(session, email, role)
    finally:
        await database.engine.dispose()
    if profile is None:
        logger.error("User not found with email: %s", email)
        return 1
    if role == UserRole.USER:
        logger.info("Removed special role from %s (%s); now a regular user", email, profile.id)
    else:
        logger.info("Set %s role for %s (%s)", role.value, email, profile.id)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Set or clear a profile's admin/gift role")
    parser.add_argument("email", help="Email of the profile to update")
    parser.add_argument("--gift", action="store_true", help="Use the gift role instead of admin")
    parser.add_argument("--remove", action="store_true", help="Revert to the regular user role")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    return asyncio.run(_run(args.email, role_for(args.gift, args.remove)))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
