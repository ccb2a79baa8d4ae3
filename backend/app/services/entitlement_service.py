"""Subscription gate.

Decides whether a user's billing status permits access to the
application.  Two subscription tables exist (``subscriptions`` and
``customer_subscriptions``) and both are consulted; a row with status
``active`` or ``trialing`` in either grants access.

The gate fails open: if any read errors, access is granted with reason
``fail_open`` so paying users are never locked out by a database hiccup.
The decision is returned as an :class:`Entitlement` value so callers
consume the policy uniformly instead of re-deriving it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.enums import ENTITLED_STATUSES, EntitlementReason, UserRole
from app.models.tables import CustomerSubscription, Profile, Subscription

logger = logging.getLogger(__name__)

# Checked in order; the first hit wins.
SUBSCRIPTION_TABLES = (Subscription, CustomerSubscription)

BYPASS_ROLES = (UserRole.ADMIN, UserRole.GIFT)


@dataclass(frozen=True)
class Entitlement:
    granted: bool
    reason: EntitlementReason
    source: Optional[str] = None  # table name or role that decided it

    def as_dict(self) -> dict:
        return {"granted": self.granted, "reason": self.reason.value, "source": self.source}


class EntitlementService:
    """Encapsulates the subscription gate queries."""

    async def role_bypass(self, db: AsyncSession, user_id: str) -> Optional[UserRole]:
        """Return the bypassing role, if any.  Errors are logged and ignored."""
        try:
            result = await db.execute(select(Profile.role).where(Profile.id == user_id))
            role = result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            logger.error("[entitlement] error checking role for %s: %s", user_id, exc)
            await db.rollback()
            return None
        return role if role in BYPASS_ROLES else None

    async def check(self, db: AsyncSession, user_id: str) -> Entitlement:
        role = await self.role_bypass(db, user_id)
        if role is not None:
            logger.info("[entitlement] %s bypasses subscription check (role=%s)", user_id, role.value)
            return Entitlement(True, EntitlementReason.ROLE_BYPASS, source=role.value)

        for model in SUBSCRIPTION_TABLES:
            for status in ENTITLED_STATUSES:
                try:
                    result = await db.execute(
                        select(model.id)
                        .where(model.user_id == user_id, model.status == status.value)
                        .limit(1)
                    )
                    row = result.first()
                except SQLAlchemyError as exc:
                    logger.error(
                        "[entitlement] error reading %s (%s) for %s; failing open: %s",
                        model.__tablename__, status.value, user_id, exc,
                    )
                    await db.rollback()
                    return Entitlement(True, EntitlementReason.FAIL_OPEN, source=model.__tablename__)
                if row is not None:
                    return Entitlement(True, EntitlementReason.SUBSCRIPTION, source=model.__tablename__)

        logger.info("[entitlement] no active subscription found for %s", user_id)
        return Entitlement(False, EntitlementReason.NO_SUBSCRIPTION)


__all__ = ["Entitlement", "EntitlementService", "SUBSCRIPTION_TABLES"]
