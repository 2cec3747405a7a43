"""Subscription checks and the free-tier daily recipe counter."""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealbyme.config import get_settings
from mealbyme.db.upsert import upsert
from mealbyme.errors import SubscriptionRequiredError, classify_storage_error
from mealbyme.models.account import Subscription
from mealbyme.models.recipe import RecipeGeneration
from mealbyme.services.retry import retry_operation


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


@dataclass
class UsageSummary:
    status: str
    is_subscribed: bool
    daily_generations: int
    daily_limit: Optional[int]  # None when subscribed (unlimited)

    @property
    def remaining_generations(self) -> Optional[int]:
        if self.daily_limit is None:
            return None
        return max(self.daily_limit - self.daily_generations, 0)


async def get_subscription_status(db: AsyncSession, user_id: str) -> str:
    """"active" or "inactive". Users with no row yet are inactive."""
    try:
        result = await db.execute(select(Subscription.status).where(Subscription.user_id == user_id))
    except SQLAlchemyError as e:
        raise classify_storage_error(e)
    return result.scalar_one_or_none() or "inactive"


async def require_subscription(db: AsyncSession, user_id: str, feature: str = "This feature") -> None:
    if await get_subscription_status(db, user_id) != "active":
        raise SubscriptionRequiredError(f"{feature} requires a premium subscription")


async def get_daily_generations(db: AsyncSession, user_id: str, day: Optional[date] = None) -> int:
    try:
        result = await db.execute(
            select(RecipeGeneration.count).where(
                RecipeGeneration.user_id == user_id,
                RecipeGeneration.date == (day or utc_today()),
            )
        )
    except SQLAlchemyError as e:
        raise classify_storage_error(e)
    return result.scalar_one_or_none() or 0


async def get_usage_summary(db: AsyncSession, user_id: str) -> UsageSummary:
    status = await get_subscription_status(db, user_id)
    subscribed = status == "active"
    return UsageSummary(
        status=status,
        is_subscribed=subscribed,
        daily_generations=await get_daily_generations(db, user_id),
        daily_limit=None if subscribed else get_settings().free_daily_recipe_generations,
    )


async def check_recipe_allowance(db: AsyncSession, user_id: str) -> UsageSummary:
    """Raise SubscriptionRequiredError once a free user has used today's generations."""
    usage = await get_usage_summary(db, user_id)
    if usage.remaining_generations == 0:
        raise SubscriptionRequiredError(
            f"You've reached your daily limit of {usage.daily_limit} recipe generations. "
            "Upgrade to premium for unlimited recipes."
        )
    return usage


async def increment_daily_generations(db: AsyncSession, user_id: str, day: Optional[date] = None) -> None:
    """Bump today's counter. Keyed on (user_id, date), so safe to retry."""
    settings = get_settings()
    day = day or utc_today()

    async def bump():
        try:
            await upsert(
                db,
                RecipeGeneration,
                {"user_id": user_id, "date": day, "count": 1},
                conflict_columns=["user_id", "date"],
                set_={"count": RecipeGeneration.count + 1, "updated_at": func.now()},
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise classify_storage_error(e)

    await retry_operation(
        bump,
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        label="generation counter",
    )
