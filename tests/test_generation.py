"""
Tests for the generation protocol: submit, poll step by step, materialize.
"""

from datetime import date
from uuid import uuid4

import pytest
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, select

from mealbyme.errors import (
    ConfigurationError,
    GenerationTimeoutError,
    NotFoundError,
    ParseError,
    UpstreamServiceError,
    ValidationError,
)
from mealbyme.models.meal_plan import MealPlan, MealPlanGrocery, MealPlanItem, MealPlanRecipe, MealType
from mealbyme.models.schemas import MealPlanRequest, RecipeRequest, SwapMeal
from mealbyme.services.assistant import JobHandle
from mealbyme.services.generation import GenerationService
from mealbyme.services.poller import RunPoller, RunState

from conftest import FakeAssistant, as_reply, make_meal_plan_payload, make_recipe, make_swap_payload, no_sleep, run


def make_service(assistant, max_attempts=30):
    return GenerationService(
        assistant=assistant,
        poller=RunPoller(assistant, max_attempts=max_attempts, sleep=no_sleep),
        meal_plan_assistant_id="asst_plan",
        recipe_assistant_id="asst_recipe",
    )


def plan_request(**overrides) -> MealPlanRequest:
    values = dict(servings=2, dietaryNeeds=[], fitnessGoal=None, dislikedIngredients=[], startDate="2024-01-01")
    values.update(overrides)
    return MealPlanRequest(**values)


async def poll_until_ready(service, db, user_id, plan_id, handle, swap=None):
    """Drive the browser-side loop: one check per attempt until ready."""
    attempt = 1
    while True:
        outcome = await service.check_meal_plan(db, user_id, plan_id, handle, attempt=attempt, swap=swap)
        if outcome.is_ready:
            return outcome, attempt
        attempt += 1


async def count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestSubmit:

    @pytest.mark.parametrize("servings,needs", [(1, []), (6, ["vegan", "nut-free", "low-sodium"])])
    def test_end_date_is_start_plus_two(self, database, servings, needs):
        async def scenario():
            service = make_service(FakeAssistant())
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(
                    db, "user_1", plan_request(servings=servings, dietaryNeeds=needs, startDate="2024-02-28")
                )
                assert plan.start_date == date(2024, 2, 28)
                assert plan.end_date == date(2024, 3, 1)
                assert plan.generation_status == "processing"
                assert handle.run_id == "run_1"

        run(scenario())

    def test_prompt_goes_to_meal_plan_assistant(self, database):
        async def scenario():
            assistant = FakeAssistant()
            async with database.session() as db:
                await make_service(assistant).submit_meal_plan(
                    db, "user_1", plan_request(fitnessGoal="weight_loss", dislikedIngredients=["olives"])
                )
            prompt, assistant_id = assistant.submitted[0]
            assert assistant_id == "asst_plan"
            assert "weight_loss" in prompt
            assert "olives" in prompt

        run(scenario())

    def test_missing_assistant_id(self, database):
        async def scenario():
            assistant = FakeAssistant()
            service = GenerationService(assistant, RunPoller(assistant, sleep=no_sleep))
            async with database.session() as db:
                with pytest.raises(ConfigurationError):
                    await service.submit_meal_plan(db, "user_1", plan_request())
                assert await count(db, MealPlan) == 0
            assert assistant.submitted == []

        run(scenario())

    def test_swap_requires_plan_id(self):
        with pytest.raises(PydanticValidationError):
            plan_request(swapMeal={"day": 2, "mealType": "lunch"})

    def test_swap_of_someone_elses_plan(self, database):
        async def scenario():
            service = make_service(FakeAssistant(reply=as_reply(make_meal_plan_payload())))
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "owner", plan_request())
                await service.check_meal_plan(db, "owner", plan.id, handle)

                with pytest.raises(NotFoundError):
                    await service.submit_meal_plan(
                        db, "intruder",
                        plan_request(swapMeal={"day": 1, "mealType": "dinner"}, mealPlanId=str(plan.id)),
                    )

        run(scenario())

    def test_swap_of_unfinished_plan(self, database):
        async def scenario():
            service = make_service(FakeAssistant())
            async with database.session() as db:
                plan, _ = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(ValidationError):
                    await service.submit_meal_plan(
                        db, "user_1",
                        plan_request(swapMeal={"day": 1, "mealType": "dinner"}, mealPlanId=str(plan.id)),
                    )

        run(scenario())


class TestCheck:

    def test_full_generation(self, database):
        """Submit, poll through queued/in_progress, then read back 12 meals and 1 grocery list."""
        async def scenario():
            assistant = FakeAssistant(
                statuses=["queued", "in_progress", "in_progress", "completed"],
                reply=as_reply(make_meal_plan_payload(), fenced=True),
            )
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                outcome, attempts = await poll_until_ready(service, db, "user_1", plan.id, handle)

                assert attempts == 4
                assert outcome.result.state == RunState.COMPLETED
                stored = outcome.meal_plan
                assert stored.start_date == date(2024, 1, 1)
                assert stored.end_date == date(2024, 1, 3)
                assert len(stored.items) == 12
                assert len(stored.groceries) == 1
                assert assistant.message_calls == 1

        run(scenario())

    def test_running_writes_nothing(self, database):
        async def scenario():
            assistant = FakeAssistant(statuses=["in_progress"])
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                outcome = await service.check_meal_plan(db, "user_1", plan.id, handle, attempt=1)

                assert not outcome.is_ready
                assert outcome.result.raw_status == "in_progress"
                assert assistant.message_calls == 0
                assert await count(db, MealPlanItem) == 0

        run(scenario())

    def test_failed_on_fifth_poll(self, database):
        async def scenario():
            assistant = FakeAssistant(
                statuses=["in_progress"] * 4 + ["failed"],
                reply=as_reply(make_meal_plan_payload()),
            )
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(UpstreamServiceError, match="failed"):
                    await poll_until_ready(service, db, "user_1", plan.id, handle)

                assert assistant.status_calls == 5
                assert assistant.message_calls == 0
                assert await count(db, MealPlanRecipe) == 0
                assert await count(db, MealPlanItem) == 0

        run(scenario())

    @pytest.mark.parametrize("status", ["cancelled", "expired"])
    def test_other_failures(self, database, status):
        async def scenario():
            service = make_service(FakeAssistant(statuses=[status]))
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(UpstreamServiceError):
                    await service.check_meal_plan(db, "user_1", plan.id, handle)

        run(scenario())

    def test_attempt_past_budget_times_out(self, database):
        async def scenario():
            assistant = FakeAssistant(statuses=["completed"], reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant, max_attempts=30)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(GenerationTimeoutError):
                    await service.check_meal_plan(db, "user_1", plan.id, handle, attempt=31)

                assert assistant.status_calls == 0
                assert await count(db, MealPlanItem) == 0
                # The provisional plan stays behind
                assert await count(db, MealPlan) == 1

        run(scenario())

    def test_bad_payload_writes_no_rows(self, database):
        async def scenario():
            payload = make_meal_plan_payload()
            del payload["days"][2]["meals"]["snack"]["cookingTime"]
            service = make_service(FakeAssistant(reply=as_reply(payload)))
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(ParseError):
                    await service.check_meal_plan(db, "user_1", plan.id, handle)

                assert await count(db, MealPlanRecipe) == 0
                assert await count(db, MealPlanItem) == 0

        run(scenario())

    def test_repeat_poll_reads_back_only(self, database):
        """A second tab polling the same finished run must not duplicate rows."""
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                first = await service.check_meal_plan(db, "user_1", plan.id, handle)
                second = await service.check_meal_plan(db, "user_1", plan.id, handle, attempt=2)

                assert first.is_ready and second.is_ready
                assert assistant.status_calls == 1
                assert await count(db, MealPlanItem) == 12
                assert await count(db, MealPlanRecipe) == 12

        run(scenario())

    def test_swap(self, database):
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                await service.check_meal_plan(db, "user_1", plan.id, handle)

                assistant.reply = as_reply(make_swap_payload(3, "breakfast", "Overnight Oats"))
                swap = SwapMeal(day=3, mealType=MealType.BREAKFAST)
                swap_plan, swap_handle = await service.submit_meal_plan(
                    db, "user_1", plan_request(swapMeal=swap, mealPlanId=str(plan.id))
                )
                assert swap_plan.id == plan.id
                assert swap_handle.run_id == "run_2"

                outcome = await service.check_meal_plan(db, "user_1", plan.id, swap_handle, swap=swap)

                assert len(outcome.meal_plan.items) == 12
                titles = {(i.day_number, i.meal_type): i.recipe.title for i in outcome.meal_plan.items}
                assert titles[(3, "breakfast")] == "Overnight Oats"
                assert titles[(1, "breakfast")] == "Day 1 breakfast"
                assert await count(db, MealPlan) == 1
                # The replaced recipe went with its item
                assert await count(db, MealPlanRecipe) == 12

        run(scenario())

    def test_original_run_after_swap_is_refused(self, database):
        """Reloading the first generation after a swap must not store that run again."""
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan, original = await service.submit_meal_plan(db, "user_1", plan_request())
                await service.check_meal_plan(db, "user_1", plan.id, original)

                assistant.reply = as_reply(make_swap_payload(2, "lunch", "Lentil Soup"))
                swap = SwapMeal(day=2, mealType=MealType.LUNCH)
                _, swap_handle = await service.submit_meal_plan(
                    db, "user_1", plan_request(swapMeal=swap, mealPlanId=str(plan.id))
                )
                await service.check_meal_plan(db, "user_1", plan.id, swap_handle, swap=swap)

                assistant.reply = as_reply(make_meal_plan_payload())
                with pytest.raises(ValidationError, match="does not belong"):
                    await service.check_meal_plan(db, "user_1", plan.id, original)

                assert await count(db, MealPlanItem) == 12
                assert await count(db, MealPlanGrocery) == 1
                assert await count(db, MealPlanRecipe) == 12

        run(scenario())

    def test_swap_slot_comes_from_the_plan(self, database):
        """A swap run polled without swap params is still held to its one slot."""
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                await service.check_meal_plan(db, "user_1", plan.id, handle)

                swap = SwapMeal(day=2, mealType=MealType.LUNCH)
                _, swap_handle = await service.submit_meal_plan(
                    db, "user_1", plan_request(swapMeal=swap, mealPlanId=str(plan.id))
                )

                # The model re-sends the whole plan
                with pytest.raises(ParseError):
                    await service.check_meal_plan(db, "user_1", plan.id, swap_handle)
                assert await count(db, MealPlanItem) == 12

                assistant.reply = as_reply(make_swap_payload(2, "lunch", "Lentil Soup"))
                outcome = await service.check_meal_plan(db, "user_1", plan.id, swap_handle)

                titles = {(i.day_number, i.meal_type): i.recipe.title for i in outcome.meal_plan.items}
                assert titles[(2, "lunch")] == "Lentil Soup"
                assert await count(db, MealPlanItem) == 12

        run(scenario())

    def test_swap_params_must_match_pending_slot(self, database):
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan, handle = await service.submit_meal_plan(db, "user_1", plan_request())
                with pytest.raises(ValidationError, match="do not match"):
                    await service.check_meal_plan(
                        db, "user_1", plan.id, handle, swap=SwapMeal(day=1, mealType=MealType.DINNER)
                    )
                assert assistant.status_calls == 0

        run(scenario())

    def test_run_of_another_plan_is_refused(self, database):
        async def scenario():
            assistant = FakeAssistant(reply=as_reply(make_meal_plan_payload()))
            service = make_service(assistant)
            async with database.session() as db:
                plan_x, _ = await service.submit_meal_plan(db, "user_1", plan_request())
                _, handle_y = await service.submit_meal_plan(db, "user_1", plan_request(startDate="2024-02-01"))

                with pytest.raises(ValidationError):
                    await service.check_meal_plan(db, "user_1", plan_x.id, handle_y)

                assert assistant.status_calls == 0
                assert await count(db, MealPlanItem) == 0

        run(scenario())

    def test_unknown_plan(self, database):
        async def scenario():
            service = make_service(FakeAssistant())
            async with database.session() as db:
                with pytest.raises(NotFoundError):
                    await service.check_meal_plan(db, "user_1", uuid4(), JobHandle("t", "r"))

        run(scenario())


class TestGenerateRecipe:

    def test_waits_and_parses(self):
        assistant = FakeAssistant(statuses=["queued", "completed"], reply=as_reply(make_recipe("Pad Thai")))
        recipe = run(make_service(assistant).generate_recipe(RecipeRequest(desiredDish="Pad Thai", servingSize=2)))

        assert recipe.title == "Pad Thai"
        assert assistant.submitted[0][1] == "asst_recipe"
        assert assistant.status_calls == 2

    def test_timeout(self):
        assistant = FakeAssistant(statuses=["in_progress"], reply=as_reply(make_recipe()))
        with pytest.raises(GenerationTimeoutError):
            run(make_service(assistant, max_attempts=3).generate_recipe(RecipeRequest(desiredDish="Soup")))
        assert assistant.message_calls == 0

    def test_missing_text_reply(self):
        assistant = FakeAssistant(reply=None)
        with pytest.raises(ParseError):
            run(make_service(assistant).generate_recipe(RecipeRequest(desiredDish="Soup")))
