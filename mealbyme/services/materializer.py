"""
Turn a completed assistant run into meal plan rows.

Order of writes, all in one transaction:
1. per (day, meal type): recipe row, then the item row that links it
2. the grocery list row (full plans only, never on a swap)
3. plan marked completed with the run id that produced it

Then the whole aggregate is read back; that read, not the writes, is what
callers treat as "the meal plan is ready".
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from mealbyme.errors import NotFoundError, ParseError, ValidationError, classify_storage_error
from mealbyme.models.meal_plan import (
    GenerationStatus,
    MealPlan,
    MealPlanGrocery,
    MealPlanItem,
    MealPlanRecipe,
)
from mealbyme.models.schemas import MealPlanPayload, RecipePayload, SwapMeal


# ============================================================
# Parsing
# ============================================================

def parse_json_payload(raw_content: Optional[str]) -> dict:
    """
    Parse the assistant's reply as a JSON object.

    Accepts the object on its own or wrapped in a Markdown code fence;
    anything else is a ParseError.
    """
    if not raw_content or not raw_content.strip():
        raise ParseError("Empty response from the assistant")

    candidates = [raw_content.strip()]
    if "```" in raw_content:
        fenced = raw_content.split("```json")[1] if "```json" in raw_content else raw_content.split("```")[1]
        candidates.append(fenced.split("```")[0].strip())

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
        raise ParseError("Assistant response is not a JSON object")

    raise ParseError("Failed to parse assistant response as JSON")


def _describe(error: PydanticValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"{location}: {first['msg']}"


def parse_meal_plan(raw_content: Optional[str], swap: Optional[SwapMeal] = None) -> MealPlanPayload:
    """
    Parse and validate a meal plan reply.

    A swap reply must contain exactly the requested slot and nothing else; a
    full reply must include the grocery list.
    """
    data = parse_json_payload(raw_content)
    try:
        payload = MealPlanPayload.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError("Meal plan response does not match the expected format", detail=_describe(e))

    if swap:
        slots = [(day, meal_type) for day, meal_type, _ in payload.slots()]
        if slots != [(swap.day, swap.mealType)]:
            raise ParseError(
                "Swap response does not contain exactly the requested meal",
                detail=f"expected day {swap.day} {swap.mealType.value}, got {slots}",
            )
    elif payload.groceryList is None:
        raise ParseError("Meal plan response is missing the grocery list")

    return payload


def parse_recipe(raw_content: Optional[str]) -> RecipePayload:
    """Parse and validate a single recipe reply."""
    data = parse_json_payload(raw_content)
    try:
        return RecipePayload.model_validate(data)
    except PydanticValidationError as e:
        raise ParseError("Invalid recipe format received from AI", detail=_describe(e))


def recipe_columns(recipe: RecipePayload) -> dict:
    """Column values shared by meal_plan_recipes and saved_recipes."""
    data = recipe.model_dump(mode="json")
    return {
        "title": data["title"],
        "ingredients": data["ingredients"],
        "steps": data["steps"],
        "cooking_time": data["cookingTime"],
        "servings": data["servings"],
        "difficulty": data["difficulty"],
        "dietary_info": data["dietaryInfo"],
    }


# ============================================================
# Storage
# ============================================================

async def load_meal_plan(
    db: AsyncSession,
    meal_plan_id: UUID,
    user_id: Optional[str] = None,
) -> MealPlan:
    """
    Read the full aggregate: plan, items with their recipes, grocery list.

    Always re-reads from the database so callers see rows written earlier
    in the same session. Scoped to user_id when given.
    """
    query = (
        select(MealPlan)
        .where(MealPlan.id == meal_plan_id)
        .options(
            selectinload(MealPlan.items).selectinload(MealPlanItem.recipe),
            selectinload(MealPlan.groceries),
        )
        .execution_options(populate_existing=True)
    )
    if user_id is not None:
        query = query.where(MealPlan.user_id == user_id)

    try:
        result = await db.execute(query)
    except SQLAlchemyError as e:
        raise classify_storage_error(e)

    plan = result.scalar_one_or_none()
    if plan is None:
        raise NotFoundError("Meal plan not found")
    return plan


def already_materialized(plan: MealPlan, run_id: str) -> bool:
    """True if this run's output is already in the plan (e.g. a second tab polled first)."""
    return plan.last_run_id == run_id


def pending_swap(plan: MealPlan) -> Optional[SwapMeal]:
    """The slot the plan's pending run regenerates, or None for a full run."""
    if plan.pending_swap_day is None or plan.pending_swap_meal_type is None:
        return None
    return SwapMeal(day=plan.pending_swap_day, mealType=plan.pending_swap_meal_type)


async def _drop_slot(db: AsyncSession, plan: MealPlan, day_number: int, meal_type: str) -> None:
    """Delete the item in one slot along with the recipe it pointed at."""
    result = await db.execute(
        select(MealPlanItem)
        .where(
            MealPlanItem.meal_plan_id == plan.id,
            MealPlanItem.day_number == day_number,
            MealPlanItem.meal_type == meal_type,
        )
        .options(selectinload(MealPlanItem.recipe))
    )
    for item in result.scalars().all():
        await db.delete(item)
        await db.delete(item.recipe)
    await db.flush()


async def materialize_meal_plan(
    db: AsyncSession,
    plan: MealPlan,
    run_id: str,
    payload: MealPlanPayload,
    swap: Optional[SwapMeal] = None,
) -> MealPlan:
    """
    Persist a parsed payload into plan and return the re-read aggregate.

    A full payload is only accepted while the plan is still processing; a
    completed plan can only change one slot at a time through a swap.

    Any storage failure rolls back every row of this call and is raised as
    a StorageError.
    """
    if not swap and plan.generation_status == GenerationStatus.COMPLETED.value:
        raise ValidationError("This meal plan has already been generated")

    try:
        for day_number, meal_type, recipe in payload.slots():
            if swap:
                # The replaced recipe belongs to that item alone
                await _drop_slot(db, plan, day_number, meal_type.value)

            recipe_row = MealPlanRecipe(**recipe_columns(recipe))
            db.add(recipe_row)
            await db.flush()

            db.add(MealPlanItem(
                meal_plan_id=plan.id,
                day_number=day_number,
                meal_type=meal_type.value,
                recipe_id=recipe_row.id,
            ))
            await db.flush()

        if not swap:
            db.add(MealPlanGrocery(
                meal_plan_id=plan.id,
                items=payload.groceryList.model_dump(mode="json"),
            ))

        plan.generation_status = GenerationStatus.COMPLETED.value
        plan.last_run_id = run_id
        plan.pending_run_id = None
        plan.pending_swap_day = None
        plan.pending_swap_meal_type = None
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        print(f"❌ Failed to store meal plan {plan.id}: {e}")
        raise classify_storage_error(e)

    slots = len(payload.slots())
    print(f"✅ Stored {slots} meal(s) for plan {plan.id}" + (" (swap)" if swap else ""))

    return await load_meal_plan(db, plan.id)


async def sweep_abandoned_plans(
    db: AsyncSession,
    older_than: timedelta,
    now: Optional[datetime] = None,
) -> int:
    """
    Delete provisional plans whose generation never completed.

    Returns the number of plans removed.
    """
    cutoff = (now or datetime.now(timezone.utc)) - older_than
    try:
        result = await db.execute(
            delete(MealPlan)
            .where(
                MealPlan.generation_status == GenerationStatus.PROCESSING.value,
                MealPlan.created_at < cutoff,
            )
            .returning(MealPlan.id)
        )
        deleted_ids = result.scalars().all()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise classify_storage_error(e)

    print(f"🗑️ Swept {len(deleted_ids)} abandoned provisional meal plan(s)")
    return len(deleted_ids)
