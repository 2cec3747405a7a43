"""
Pytest configuration and fixtures for MealByMe tests.
"""

import asyncio
import json
import os
from contextlib import asynccontextmanager
from types import SimpleNamespace
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

# Set test environment before importing mealbyme modules
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["ENVIRONMENT"] = "test"
for name in ("SENTRY_DSN", "CLERK_SECRET_KEY", "STRIPE_SECRET_KEY", "STRIPE_WEBHOOK_SECRET", "STRIPE_PRICE_ID"):
    os.environ.pop(name, None)

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from mealbyme.db.database import Base
from mealbyme.services.assistant import JobHandle


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def no_sleep(seconds: float) -> None:
    return None


class SqliteDatabase:
    """
    In-memory SQLite database standing in for Postgres.

    One connection (StaticPool) so every session sees the same data.
    Tables are created on first use, inside whichever loop uses it.
    """

    def __init__(self):
        self.engine = create_async_engine(
            "sqlite+aiosqlite://",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        self.sessionmaker = async_sessionmaker(self.engine, expire_on_commit=False)
        self._ready = False

    async def ensure_tables(self):
        if not self._ready:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            self._ready = True

    @asynccontextmanager
    async def session(self):
        await self.ensure_tables()
        async with self.sessionmaker() as session:
            yield session

    async def get_db(self):
        """Drop-in override for mealbyme.db.get_db."""
        await self.ensure_tables()
        async with self.sessionmaker() as session:
            yield session


class FakeAssistant:
    """
    Stands in for AssistantService.

    statuses are returned one per get_run_status() call; the last one
    repeats once the list runs out.
    """

    def __init__(self, statuses=("completed",), reply: Optional[str] = None):
        self.statuses = list(statuses)
        self.reply = reply
        self.submitted = []
        self.status_calls = 0
        self.message_calls = 0

    async def submit(self, prompt: str, assistant_id: str) -> JobHandle:
        self.submitted.append((prompt, assistant_id))
        return JobHandle(thread_id=f"thread_{len(self.submitted)}", run_id=f"run_{len(self.submitted)}")

    async def get_run_status(self, handle: JobHandle) -> str:
        index = min(self.status_calls, len(self.statuses) - 1)
        self.status_calls += 1
        return self.statuses[index]

    async def get_latest_message_text(self, thread_id: str) -> Optional[str]:
        self.message_calls += 1
        return self.reply


MEAL_TYPES = ["breakfast", "lunch", "dinner", "snack"]


def make_recipe(title: str = "Veggie Omelette", **overrides) -> dict:
    recipe = {
        "title": title,
        "ingredients": [
            {"name": "eggs", "amount": 2, "unit": "large"},
            {"name": "spinach", "amount": "1", "unit": "cup"},
        ],
        "steps": [
            {"number": 1, "instruction": "Whisk the eggs."},
            {"number": 2, "instruction": "Cook with spinach until set."},
        ],
        "cookingTime": {"prep": "5 mins", "cook": "10 mins", "total": "15 mins"},
        "servings": 2,
        "difficulty": "easy",
        "dietaryInfo": {
            "calories": 220,
            "protein": "14g",
            "carbs": "4g",
            "fats": "16g",
            "fiber": "1g",
            "sodium": "320mg",
            "dietaryTags": ["vegetarian"],
            "allergens": ["eggs"],
        },
    }
    recipe.update(overrides)
    return recipe


def make_meal_plan_payload(days: int = 3, meal_types=MEAL_TYPES) -> dict:
    return {
        "days": [
            {
                "dayNumber": day,
                "meals": {meal: make_recipe(f"Day {day} {meal}") for meal in meal_types},
            }
            for day in range(1, days + 1)
        ],
        "groceryList": {
            "categories": [
                {
                    "name": "Produce",
                    "items": [{"name": "spinach", "amount": 3, "unit": "cups", "usedIn": ["Day 1 Breakfast"]}],
                },
                {
                    "name": "Dairy & Eggs",
                    "items": [{"name": "eggs", "amount": "24", "unit": "large", "usedIn": ["Day 1 Breakfast"]}],
                },
            ]
        },
    }


def make_swap_payload(day: int, meal_type: str, title: str = "Swapped Meal") -> dict:
    return {"days": [{"dayNumber": day, "meals": {meal_type: make_recipe(title)}}]}


def as_reply(payload: dict, fenced: bool = False) -> str:
    text = json.dumps(payload)
    if fenced:
        return f"Here is your plan:\n```json\n{text}\n```"
    return text


@pytest.fixture
def database():
    """Fresh in-memory database per test."""
    return SqliteDatabase()


class FakeStripeCustomers:
    """Just enough of StripeClient.customers (async methods), backed by a list."""

    def __init__(self):
        self.created = []

    async def list_async(self, params=None):
        email = (params or {}).get("email")
        matches = [c for c in self.created if c.email == email]
        return SimpleNamespace(data=matches[:1])

    async def create_async(self, params=None):
        params = params or {}
        customer = SimpleNamespace(
            id=f"cus_{len(self.created) + 1}",
            email=params.get("email"),
            metadata=params.get("metadata", {}),
        )
        self.created.append(customer)
        return customer

    async def retrieve_async(self, customer_id, params=None):
        return next(c for c in self.created if c.id == customer_id)


class FakeStripe:
    """Stands in for stripe.StripeClient (customers, checkout, portal)."""

    def __init__(self):
        self.customers = FakeStripeCustomers()
        self.checkout = MagicMock()
        self.checkout.sessions.create_async = AsyncMock(return_value=SimpleNamespace(
            id="cs_test_1", url="https://checkout.stripe.com/c/pay/cs_test_1"
        ))
        self.billing_portal = MagicMock()
        self.billing_portal.sessions.create_async = AsyncMock(return_value=SimpleNamespace(
            url="https://billing.stripe.com/p/session/test_1"
        ))
