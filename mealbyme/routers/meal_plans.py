"""Meal planning API endpoints: generation, status polling and reads."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from typing import Any, Optional, List
from datetime import date, datetime

from mealbyme.db import get_db
from mealbyme.auth import get_current_user, AuthUser
from mealbyme.config import get_settings
from mealbyme.errors import ValidationError, classify_storage_error
from mealbyme.models.meal_plan import MealPlan, MealType
from mealbyme.models.schemas import MealPlanRequest, SwapMeal
from mealbyme.services.assistant import JobHandle
from mealbyme.services.generation import GenerationService, get_generation_service
from mealbyme.services.materializer import load_meal_plan
from mealbyme.services.usage import require_subscription

router = APIRouter(prefix="/api/meal-plans", tags=["meal-plans"])

MEAL_ORDER = [meal_type.value for meal_type in MealType]


# ============================================================
# Pydantic Schemas
# ============================================================

class GenerationAccepted(BaseModel):
    """Returned when a generation run has been started."""
    mealPlanId: UUID
    threadId: str
    runId: str
    status: str = "processing"


class MealPlanRecipeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    title: str
    ingredients: List[dict]
    steps: List[dict]
    cooking_time: dict
    servings: int
    difficulty: str
    dietary_info: Optional[dict] = None


class MealPlanItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    day_number: int
    meal_type: str
    meal_plan_recipes: MealPlanRecipeResponse = Field(validation_alias="recipe")


class MealPlanGroceryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    items: dict[str, Any]


class MealPlanSummary(BaseModel):
    """Plan row without its content."""
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    user_id: str
    start_date: date
    end_date: date
    servings: int
    dietary_needs: List[str] = []
    fitness_goal: Optional[str] = None
    disliked_ingredients: List[str] = []
    generation_status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class MealPlanResponse(MealPlanSummary):
    """The full aggregate: plan, items with nested recipes, grocery list."""
    meal_plan_items: List[MealPlanItemResponse] = Field(validation_alias="items")
    meal_plan_groceries: List[MealPlanGroceryResponse] = Field(validation_alias="groceries")


# ============================================================
# Helper Functions
# ============================================================

def _slot_order(item) -> tuple[int, int]:
    meal_type = item.meal_type
    position = MEAL_ORDER.index(meal_type) if meal_type in MEAL_ORDER else len(MEAL_ORDER)
    return item.day_number, position


def to_meal_plan_response(plan: MealPlan) -> MealPlanResponse:
    """Serialize an aggregate with items ordered by day, then breakfast..snack."""
    response = MealPlanResponse.model_validate(plan)
    response.meal_plan_items.sort(key=_slot_order)
    return response


def _swap_from_query(swap_day: Optional[int], swap_meal_type: Optional[MealType]) -> Optional[SwapMeal]:
    if swap_day is None and swap_meal_type is None:
        return None
    if swap_day is None or swap_meal_type is None:
        raise ValidationError("swapDay and swapMealType must be given together")
    return SwapMeal(day=swap_day, mealType=swap_meal_type)


# ============================================================
# Endpoints
# ============================================================

@router.post("/generate", response_model=GenerationAccepted, status_code=202)
async def generate_meal_plan(
    request: MealPlanRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Start generating a 3-day meal plan (or one swapped meal).

    Returns immediately with the ids the browser needs to poll
    GET /api/meal-plans/generate/status.
    """
    if get_settings().meal_plans_require_subscription:
        await require_subscription(db, user.id, "Meal planning")

    plan, handle = await service.submit_meal_plan(db, user.id, request)

    return GenerationAccepted(
        mealPlanId=plan.id,
        threadId=handle.thread_id,
        runId=handle.run_id,
    )


@router.get(
    "/generate/status",
    response_model=MealPlanResponse,
    responses={202: {"description": "Generation still running"}},
)
async def get_generation_status(
    threadId: str = Query(..., min_length=1),
    runId: str = Query(..., min_length=1),
    mealPlanId: UUID = Query(...),
    attempt: int = Query(1, ge=1),
    swapDay: Optional[int] = Query(None, ge=1, le=3),
    swapMealType: Optional[MealType] = Query(None),
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Advance a generation by one poll.

    - 200 with the full meal plan once the run completed and was stored
    - 202 with {status, mealPlanId} while the run is still going
    - error body if the run failed or the poll budget (attempt) ran out
    - 400 if the run is not the one pending on this plan
    """
    swap = _swap_from_query(swapDay, swapMealType)

    outcome = await service.check_meal_plan(
        db,
        user.id,
        mealPlanId,
        JobHandle(thread_id=threadId, run_id=runId),
        attempt=attempt,
        swap=swap,
    )

    if not outcome.is_ready:
        return JSONResponse(
            status_code=202,
            content={
                "status": "processing",
                "mealPlanId": str(mealPlanId),
                "runStatus": outcome.result.raw_status,
                "attempt": attempt,
            },
        )

    return to_meal_plan_response(outcome.meal_plan)


@router.get("", response_model=List[MealPlanSummary])
async def list_meal_plans(
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """List the current user's meal plans, newest first."""
    try:
        result = await db.execute(
            select(MealPlan)
            .where(MealPlan.user_id == user.id)
            .order_by(MealPlan.created_at.desc())
            .limit(limit)
        )
    except SQLAlchemyError as e:
        raise classify_storage_error(e)
    return result.scalars().all()


@router.get("/{meal_plan_id}", response_model=MealPlanResponse)
async def get_meal_plan(
    meal_plan_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Get one meal plan with its items, recipes and grocery list."""
    plan = await load_meal_plan(db, meal_plan_id, user.id)
    return to_meal_plan_response(plan)
