"""User account endpoints - subscription status and food preferences."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel
from typing import Optional, List

from mealbyme.db import get_db, upsert
from mealbyme.auth import get_current_user, AuthUser
from mealbyme.errors import classify_storage_error
from mealbyme.models.account import UserPreferences
from mealbyme.services.usage import get_usage_summary

router = APIRouter(prefix="/api/users", tags=["users"])


class SubscriptionStatusResponse(BaseModel):
    status: str  # active | inactive
    isSubscribed: bool
    dailyGenerations: int
    dailyLimit: Optional[int] = None  # None = unlimited
    remainingGenerations: Optional[int] = None


class PreferencesPayload(BaseModel):
    dietaryRestrictions: List[str] = []
    favoriteIngredients: List[str] = []
    dislikedIngredients: List[str] = []


@router.get("/me/subscription", response_model=SubscriptionStatusResponse)
async def get_my_subscription(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Subscription status plus today's recipe generation usage."""
    usage = await get_usage_summary(db, user.id)
    return SubscriptionStatusResponse(
        status=usage.status,
        isSubscribed=usage.is_subscribed,
        dailyGenerations=usage.daily_generations,
        dailyLimit=usage.daily_limit,
        remainingGenerations=usage.remaining_generations,
    )


@router.get("/me/preferences", response_model=PreferencesPayload)
async def get_my_preferences(
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Saved preferences; empty lists if the user never saved any."""
    try:
        result = await db.execute(select(UserPreferences).where(UserPreferences.user_id == user.id))
    except SQLAlchemyError as e:
        raise classify_storage_error(e)

    prefs = result.scalar_one_or_none()
    if prefs is None:
        return PreferencesPayload()

    return PreferencesPayload(
        dietaryRestrictions=prefs.dietary_restrictions or [],
        favoriteIngredients=prefs.favorite_ingredients or [],
        dislikedIngredients=prefs.disliked_ingredients or [],
    )


@router.put("/me/preferences", response_model=PreferencesPayload)
async def update_my_preferences(
    payload: PreferencesPayload,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Replace the user's preferences."""
    values = {
        "user_id": user.id,
        "dietary_restrictions": payload.dietaryRestrictions,
        "favorite_ingredients": payload.favoriteIngredients,
        "disliked_ingredients": payload.dislikedIngredients,
    }
    try:
        await upsert(
            db,
            UserPreferences,
            values,
            conflict_columns=["user_id"],
            set_={**{key: value for key, value in values.items() if key != "user_id"}, "updated_at": func.now()},
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise classify_storage_error(e)

    print(f"✅ Saved preferences for {user.id}")
    return payload
