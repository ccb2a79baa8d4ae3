"""Monthly usage statistics.

One ``user_usage_stats`` row exists per user per calendar month.  Rows
are created lazily (insert-if-absent on ``(user_id, month_start)``) so
existing counters are never reset by a second caller.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import upsert
from app.models.tables import RedditAccount, UserUsageStats
from app.utils.helpers import month_bounds, utcnow


class UsageService:
    async def ensure_month_row(self, db: AsyncSession, user_id: str, when: Optional[dt.datetime] = None) -> None:
        now = when or utcnow()
        start, end = month_bounds(now)
        await upsert(
            db,
            UserUsageStats,
            {
                "user_id": user_id,
                "month_start": start,
                "month_end": end,
                "subreddit_analysis_count": 0,
                "reddit_accounts_count": 0,
                "created_at": now,
                "updated_at": now,
            },
            conflict_cols=["user_id", "month_start"],
            update_cols=[],
        )

    async def count_reddit_accounts(self, db: AsyncSession, user_id: str) -> int:
        result = await db.execute(
            select(func.count(RedditAccount.id)).where(
                RedditAccount.user_id == user_id,
                RedditAccount.is_active.is_(True),
            )
        )
        return int(result.scalar() or 0)

    async def record_reddit_accounts(self, db: AsyncSession, user_id: str, when: Optional[dt.datetime] = None) -> int:
        """Store the user's current active account count on this month's row."""
        now = when or utcnow()
        start, _ = month_bounds(now)
        count = await self.count_reddit_accounts(db, user_id)
        await db.execute(
            update(UserUsageStats)
            .where(UserUsageStats.user_id == user_id, UserUsageStats.month_start == start)
            .values(reddit_accounts_count=count, updated_at=now)
        )
        return count

    async def get_month_row(self, db: AsyncSession, user_id: str, when: Optional[dt.datetime] = None) -> Optional[UserUsageStats]:
        start, _ = month_bounds(when)
        result = await db.execute(
            select(UserUsageStats).where(UserUsageStats.user_id == user_id, UserUsageStats.month_start == start)
        )
        return result.scalar_one_or_none()


__all__ = ["UsageService"]
