"""
Generation orchestration: submit a meal plan, advance its poll by one step,
and generate single recipes.

Meal plan flow (browser driven):
1. submit_meal_plan(): prompt -> assistant run -> provisional plan row
2. check_meal_plan(), once per browser poll: one status query; on
   completion, parse the reply and materialize it into the plan
"""

from dataclasses import dataclass
from datetime import timedelta
from functools import lru_cache
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealbyme.config import get_settings
from mealbyme.errors import ParseError, ValidationError, classify_storage_error
from mealbyme.models.meal_plan import GenerationStatus, MealPlan, PLAN_LENGTH_DAYS
from mealbyme.models.schemas import MealPlanRequest, RecipePayload, RecipeRequest, SwapMeal
from mealbyme.services.assistant import AssistantService, JobHandle, get_assistant_service, require_assistant_id
from mealbyme.services.materializer import (
    already_materialized,
    load_meal_plan,
    materialize_meal_plan,
    parse_meal_plan,
    parse_recipe,
    pending_swap,
)
from mealbyme.services.poller import PollResult, RunPoller, RunState
from mealbyme.services.prompts import get_meal_plan_prompt, get_recipe_prompt


@dataclass
class PollOutcome:
    """What one poll step produced: the run state, plus the plan once it is ready."""
    result: PollResult
    meal_plan: Optional[MealPlan] = None

    @property
    def is_ready(self) -> bool:
        return self.meal_plan is not None


class GenerationService:
    """Ties the assistant, the poller and the materializer together."""

    def __init__(
        self,
        assistant: AssistantService,
        poller: RunPoller,
        meal_plan_assistant_id: Optional[str] = None,
        recipe_assistant_id: Optional[str] = None,
    ):
        self.assistant = assistant
        self.poller = poller
        self.meal_plan_assistant_id = meal_plan_assistant_id
        self.recipe_assistant_id = recipe_assistant_id

    # ------------------------------------------------------------
    # Meal plans
    # ------------------------------------------------------------

    async def submit_meal_plan(
        self,
        db: AsyncSession,
        user_id: str,
        request: MealPlanRequest,
    ) -> tuple[MealPlan, JobHandle]:
        """
        Start a generation run and return the plan it will fill in.

        A full request writes a new provisional plan after the run has been
        started; a swap reuses the caller's existing, completed plan. Either
        way the plan records the run (and the swapped slot) as pending, and
        only that run can later be stored into it.
        """
        assistant_id = require_assistant_id(self.meal_plan_assistant_id, "OPENAI_MEAL_PLAN_ASSISTANT_ID")

        plan = None
        if request.swapMeal:
            plan = await load_meal_plan(db, request.mealPlanId, user_id)
            if plan.generation_status != GenerationStatus.COMPLETED.value:
                raise ValidationError("This meal plan is still being generated")

        prompt = get_meal_plan_prompt(
            servings=request.servings,
            dietary_needs=request.dietaryNeeds,
            fitness_goal=request.fitnessGoal.value if request.fitnessGoal else None,
            disliked_ingredients=request.dislikedIngredients,
            swap_meal=request.swapMeal,
        )
        handle = await self.assistant.submit(prompt, assistant_id)

        if plan is not None:
            plan.pending_run_id = handle.run_id
            plan.pending_swap_day = request.swapMeal.day
            plan.pending_swap_meal_type = request.swapMeal.mealType.value
        else:
            plan = MealPlan(
                user_id=user_id,
                start_date=request.startDate,
                end_date=request.startDate + timedelta(days=PLAN_LENGTH_DAYS - 1),
                servings=request.servings,
                dietary_needs=request.dietaryNeeds,
                fitness_goal=request.fitnessGoal.value if request.fitnessGoal else None,
                disliked_ingredients=request.dislikedIngredients,
                generation_status=GenerationStatus.PROCESSING.value,
                pending_run_id=handle.run_id,
            )
            db.add(plan)

        try:
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            print(f"❌ Failed to record meal plan run: {e}")
            raise classify_storage_error(e)

        if request.swapMeal:
            print(f"🔄 Swapping day {request.swapMeal.day} {request.swapMeal.mealType.value} of plan {plan.id}")
        else:
            print(f"🚀 Meal plan {plan.id} submitted ({plan.start_date} -> {plan.end_date})")
        return plan, handle

    async def check_meal_plan(
        self,
        db: AsyncSession,
        user_id: str,
        meal_plan_id: UUID,
        handle: JobHandle,
        attempt: int = 1,
        swap: Optional[SwapMeal] = None,
    ) -> PollOutcome:
        """
        Advance the run by one poll.

        Failed, cancelled, expired and timed out runs raise before anything
        is written. A run that was already materialized is only read back.
        Any other run must be the one pending on the plan; the slot a swap
        regenerates comes from the plan, and swap only has to agree with it.
        """
        plan = await load_meal_plan(db, meal_plan_id, user_id)
        if already_materialized(plan, handle.run_id):
            return PollOutcome(
                result=PollResult(state=RunState.COMPLETED, attempt=attempt, raw_status="completed"),
                meal_plan=plan,
            )

        if plan.pending_run_id != handle.run_id:
            raise ValidationError("This generation run does not belong to this meal plan")

        pending = pending_swap(plan)
        if swap is not None and swap != pending:
            raise ValidationError("swapDay and swapMealType do not match the meal being swapped")

        result = await self.poller.poll_once(handle, attempt)
        if result.state != RunState.COMPLETED:
            result.raise_for_state()
            return PollOutcome(result=result)

        raw_content = await self.assistant.get_latest_message_text(handle.thread_id)
        if raw_content is None:
            raise ParseError("Unexpected response format from the assistant")

        payload = parse_meal_plan(raw_content, pending)
        plan = await materialize_meal_plan(db, plan, handle.run_id, payload, pending)
        return PollOutcome(result=result, meal_plan=plan)

    # ------------------------------------------------------------
    # Single recipes
    # ------------------------------------------------------------

    async def generate_recipe(self, request: RecipeRequest) -> RecipePayload:
        """Generate one recipe, waiting in-process with the bounded poller."""
        assistant_id = require_assistant_id(self.recipe_assistant_id, "OPENAI_RECIPE_ASSISTANT_ID")

        prompt = get_recipe_prompt(
            desired_dish=request.desiredDish,
            serving_size=request.servingSize,
            dietary_restrictions=request.dietaryRestrictions,
            liked_ingredients=request.likedIngredients,
            disliked_ingredients=request.dislikedIngredients,
        )
        handle = await self.assistant.submit(prompt, assistant_id)

        result = await self.poller.wait(handle)
        result.raise_for_state()

        raw_content = await self.assistant.get_latest_message_text(handle.thread_id)
        if raw_content is None:
            raise ParseError("Unexpected response format from the assistant")

        recipe = parse_recipe(raw_content)
        print(f"✅ Generated recipe: {recipe.title}")
        return recipe


@lru_cache
def get_generation_service() -> GenerationService:
    settings = get_settings()
    assistant = get_assistant_service()
    return GenerationService(
        assistant=assistant,
        poller=RunPoller(
            assistant,
            max_attempts=settings.generation_poll_max_attempts,
            interval_seconds=settings.generation_poll_interval_seconds,
        ),
        meal_plan_assistant_id=settings.openai_meal_plan_assistant_id,
        recipe_assistant_id=settings.openai_recipe_assistant_id,
    )


def get_sweep_cutoff() -> timedelta:
    return timedelta(hours=get_settings().provisional_plan_ttl_hours)
