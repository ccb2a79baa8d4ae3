"""Profile synchronisation between the identity provider and ``profiles``.

The identity provider owns users; ``profiles`` is only a local mirror
kept so other tables can be joined against it.  Every time an identity
is resolved its fields are upserted, keyed on the identity id.

Sync failures never block a request: they are logged, the session is
rolled back and the caller proceeds with ``None`` for the profile.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import upsert
from app.core.security import Identity
from app.models.tables import Profile
from app.utils.helpers import utcnow

logger = logging.getLogger(__name__)


class ProfileSync:
    """Mirror identities into the ``profiles`` table."""

    async def sync(self, db: AsyncSession, identity: Identity) -> Optional[Profile]:
        values = {
            "id": identity.id,
            "email": identity.email,
            "display_name": identity.display_name,
            "image_url": identity.image_url,
            "updated_at": utcnow(),
        }
        try:
            # ``role`` and ``created_at`` are left alone on conflict
            await upsert(db, Profile, values, conflict_cols=["id"])
            await db.commit()
            result = await db.execute(
                select(Profile).where(Profile.id == identity.id).execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("[profile] error syncing identity %s to profiles: %s", identity.id, exc)
            await db.rollback()
            return None

    async def update_display_name(self, db: AsyncSession, identity: Identity, display_name: str) -> Profile:
        """Update the mirrored display name.  Unlike :meth:`sync` this raises."""
        profile = await db.get(Profile, identity.id)
        if profile is None:
            profile = await self.sync(db, identity)
            if profile is None:
                raise LookupError(f"profile {identity.id} could not be created")
        profile.display_name = display_name
        profile.updated_at = utcnow()
        await db.commit()
        await db.refresh(profile)
        return profile


__all__ = ["ProfileSync"]
