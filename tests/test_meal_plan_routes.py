"""HTTP tests for meal plan generation, polling and reads."""

import pytest
from fastapi.testclient import TestClient

from mealbyme.auth import AuthUser, get_current_user
from mealbyme.config import get_settings
from mealbyme.db import get_db
from mealbyme.main import app
from mealbyme.services.generation import GenerationService, get_generation_service
from mealbyme.services.poller import RunPoller

from conftest import FakeAssistant, as_reply, make_meal_plan_payload, make_swap_payload, no_sleep

USER = AuthUser(id="user_1", email="cook@example.com")

SUBMIT_BODY = {
    "servings": 2,
    "dietaryNeeds": [],
    "fitnessGoal": None,
    "dislikedIngredients": [],
    "startDate": "2024-01-01",
}


@pytest.fixture
def assistant():
    return FakeAssistant(
        statuses=["queued", "in_progress", "completed"],
        reply=as_reply(make_meal_plan_payload()),
    )


@pytest.fixture
def client(database, assistant, monkeypatch):
    monkeypatch.setattr(get_settings(), "meal_plans_require_subscription", False)
    service = GenerationService(
        assistant=assistant,
        poller=RunPoller(assistant, max_attempts=30, sleep=no_sleep),
        meal_plan_assistant_id="asst_plan",
    )
    app.dependency_overrides[get_db] = database.get_db
    app.dependency_overrides[get_current_user] = lambda: USER
    app.dependency_overrides[get_generation_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def poll(client, accepted, attempt, **extra):
    params = {
        "threadId": accepted["threadId"],
        "runId": accepted["runId"],
        "mealPlanId": accepted["mealPlanId"],
        "attempt": attempt,
        **extra,
    }
    return client.get("/api/meal-plans/generate/status", params=params)


def test_generate_then_poll_to_completion(client):
    response = client.post("/api/meal-plans/generate", json=SUBMIT_BODY)
    assert response.status_code == 202
    accepted = response.json()
    assert accepted["status"] == "processing"
    assert accepted["threadId"] == "thread_1"

    first = poll(client, accepted, 1)
    assert first.status_code == 202
    assert first.json()["status"] == "processing"
    assert first.json()["mealPlanId"] == accepted["mealPlanId"]

    assert poll(client, accepted, 2).status_code == 202

    done = poll(client, accepted, 3)
    assert done.status_code == 200
    plan = done.json()
    assert plan["id"] == accepted["mealPlanId"]
    assert plan["start_date"] == "2024-01-01"
    assert plan["end_date"] == "2024-01-03"
    assert len(plan["meal_plan_items"]) == 12
    assert len(plan["meal_plan_groceries"]) == 1
    first_item = plan["meal_plan_items"][0]
    assert (first_item["day_number"], first_item["meal_type"]) == (1, "breakfast")
    assert first_item["meal_plan_recipes"]["cooking_time"]["total"] == "15 mins"

    # The plan is readable afterwards, and listed
    assert client.get(f"/api/meal-plans/{accepted['mealPlanId']}").json()["meal_plan_items"] == plan["meal_plan_items"]
    listed = client.get("/api/meal-plans").json()
    assert [p["id"] for p in listed] == [accepted["mealPlanId"]]
    assert listed[0]["generation_status"] == "completed"


def test_failed_run_returns_structured_error(client, assistant):
    assistant.statuses = ["failed"]
    accepted = client.post("/api/meal-plans/generate", json=SUBMIT_BODY).json()

    response = poll(client, accepted, 1)

    assert response.status_code == 502
    assert response.json()["error"]["type"] == "api_error"
    assert "failed" in response.json()["error"]["message"]
    assert assistant.message_calls == 0


def test_poll_past_budget(client, assistant):
    accepted = client.post("/api/meal-plans/generate", json=SUBMIT_BODY).json()

    response = poll(client, accepted, 31)

    assert response.status_code == 504
    assert response.json()["error"]["type"] == "timeout_error"
    assert assistant.status_calls == 0


def test_swap_over_http(client, assistant):
    assistant.statuses = ["completed"]
    accepted = client.post("/api/meal-plans/generate", json=SUBMIT_BODY).json()
    assert poll(client, accepted, 1).status_code == 200

    assistant.reply = as_reply(make_swap_payload(2, "lunch", "Lentil Soup"))
    swap_body = {**SUBMIT_BODY, "swapMeal": {"day": 2, "mealType": "lunch"}, "mealPlanId": accepted["mealPlanId"]}
    swap_accepted = client.post("/api/meal-plans/generate", json=swap_body).json()
    assert swap_accepted["mealPlanId"] == accepted["mealPlanId"]

    response = poll(client, swap_accepted, 1, swapDay=2, swapMealType="lunch")

    assert response.status_code == 200
    items = response.json()["meal_plan_items"]
    assert len(items) == 12
    lunch = next(i for i in items if (i["day_number"], i["meal_type"]) == (2, "lunch"))
    assert lunch["meal_plan_recipes"]["title"] == "Lentil Soup"

    # Reloading the first generation URL does not store that run a second time
    assistant.reply = as_reply(make_meal_plan_payload())
    reload = poll(client, accepted, 1)
    assert reload.status_code == 400
    assert reload.json()["error"]["type"] == "invalid_request_error"

    stored = client.get(f"/api/meal-plans/{accepted['mealPlanId']}").json()
    assert len(stored["meal_plan_items"]) == 12
    assert len(stored["meal_plan_groceries"]) == 1


def test_swap_query_needs_both_params(client):
    accepted = client.post("/api/meal-plans/generate", json=SUBMIT_BODY).json()
    response = poll(client, accepted, 1, swapDay=2)
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "invalid_request_error"


def test_invalid_servings(client):
    response = client.post("/api/meal-plans/generate", json={**SUBMIT_BODY, "servings": 0})
    assert response.status_code == 400
    assert response.json()["error"]["type"] == "invalid_request_error"


def test_meal_plans_require_subscription(client, monkeypatch):
    monkeypatch.setattr(get_settings(), "meal_plans_require_subscription", True)

    response = client.post("/api/meal-plans/generate", json=SUBMIT_BODY)

    assert response.status_code == 402
    assert response.json()["error"]["type"] == "subscription_required"


def test_missing_auth_header(database):
    app.dependency_overrides[get_db] = database.get_db
    try:
        with TestClient(app) as client:
            response = client.get("/api/meal-plans")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 401
    assert response.json() == {"error": {"message": "No authorization header", "type": "authentication_error"}}


def test_unknown_plan(client):
    response = client.get("/api/meal-plans/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404
    assert response.json()["error"]["type"] == "not_found"
