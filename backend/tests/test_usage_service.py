from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy import select

from app.models.tables import RedditAccount, UserUsageStats
from app.services.usage_service import UsageService

WHEN = dt.datetime(2024, 3, 15, 12, 0, tzinfo=dt.timezone.utc)


@pytest.mark.asyncio
async def test_month_row_is_insert_if_absent(session):
    usage = UsageService()
    await usage.ensure_month_row(session, "user_1", when=WHEN)
    await session.commit()

    row = await usage.get_month_row(session, "user_1", when=WHEN)
    row.subreddit_analysis_count = 2
    await session.commit()

    # a second caller in the same month must not reset the counters
    await usage.ensure_month_row(session, "user_1", when=WHEN + dt.timedelta(days=3))
    await session.commit()
    rows = (await session.execute(select(UserUsageStats))).scalars().all()
    assert len(rows) == 1
    await session.refresh(rows[0])
    assert rows[0].subreddit_analysis_count == 2
    assert rows[0].month_end.day == 31


@pytest.mark.asyncio
async def test_record_reddit_accounts_counts_active_only(session):
    usage = UsageService()
    for name, active in (("a", True), ("b", True), ("c", False)):
        session.add(
            RedditAccount(
                user_id="user_1",
                username=name,
                access_token="at",
                refresh_token="rt",
                token_expiry=WHEN,
                is_active=active,
            )
        )
    await session.commit()
    await usage.ensure_month_row(session, "user_1", when=WHEN)
    assert await usage.record_reddit_accounts(session, "user_1", when=WHEN) == 2
    await session.commit()
    row = await usage.get_month_row(session, "user_1", when=WHEN)
    await session.refresh(row)
    assert row.reddit_accounts_count == 2
