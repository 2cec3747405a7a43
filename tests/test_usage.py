"""Tests for the free tier daily counter and subscription checks."""

from datetime import date

import pytest

from mealbyme.errors import SubscriptionRequiredError
from mealbyme.models.account import Subscription
from mealbyme.services.usage import (
    check_recipe_allowance,
    get_daily_generations,
    get_subscription_status,
    get_usage_summary,
    increment_daily_generations,
    require_subscription,
)

from conftest import run


def test_counter_increments_per_day(database):
    async def scenario():
        async with database.session() as db:
            monday, tuesday = date(2024, 1, 1), date(2024, 1, 2)
            await increment_daily_generations(db, "user_1", monday)
            await increment_daily_generations(db, "user_1", monday)
            await increment_daily_generations(db, "user_1", tuesday)

            assert await get_daily_generations(db, "user_1", monday) == 2
            assert await get_daily_generations(db, "user_1", tuesday) == 1
            assert await get_daily_generations(db, "user_2", monday) == 0

    run(scenario())


def test_free_limit(database):
    async def scenario():
        async with database.session() as db:
            for _ in range(4):
                await increment_daily_generations(db, "user_1")
            usage = await check_recipe_allowance(db, "user_1")
            assert usage.remaining_generations == 1

            await increment_daily_generations(db, "user_1")
            with pytest.raises(SubscriptionRequiredError, match="daily limit of 5"):
                await check_recipe_allowance(db, "user_1")

    run(scenario())


def test_subscribers_are_unlimited(database):
    async def scenario():
        async with database.session() as db:
            db.add(Subscription(user_id="user_1", status="active"))
            await db.commit()
            for _ in range(6):
                await increment_daily_generations(db, "user_1")

            usage = await check_recipe_allowance(db, "user_1")
            assert usage.is_subscribed
            assert usage.daily_limit is None
            assert usage.remaining_generations is None
            assert usage.daily_generations == 6

    run(scenario())


def test_subscription_gate(database):
    async def scenario():
        async with database.session() as db:
            assert await get_subscription_status(db, "nobody") == "inactive"
            with pytest.raises(SubscriptionRequiredError):
                await require_subscription(db, "nobody", "Meal planning")

            db.add(Subscription(user_id="payer", status="active"))
            await db.commit()
            await require_subscription(db, "payer")
            assert (await get_usage_summary(db, "payer")).status == "active"

    run(scenario())
