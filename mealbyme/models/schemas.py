"""Pydantic schemas for the JSON the recipe and meal plan assistants return.

These match the shapes the assistants are instructed to produce
(see services/prompts.py) and the TypeScript types of the web client:
- Recipe
- MealPlan days / meals
- GroceryList categories
"""

from datetime import date
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from mealbyme.models.meal_plan import FitnessGoal, MealType, PLAN_LENGTH_DAYS


def _to_text(value: Any) -> Any:
    """Models often emit quantities as numbers ("amount": 2); store them as text."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return f"{value:g}"
    return value


# ============================================================
# Recipe
# ============================================================

class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class Ingredient(BaseModel):
    """Single ingredient line."""
    name: str = Field(min_length=1)
    amount: str = Field(min_length=1)
    unit: Optional[str] = None

    coerce_text = field_validator("amount", "unit", mode="before")(_to_text)


class RecipeStep(BaseModel):
    """One numbered instruction."""
    number: int = Field(ge=1)
    instruction: str = Field(min_length=1)


class CookingTime(BaseModel):
    """Cooking time breakdown."""
    prep: str
    cook: str
    total: str

    coerce_text = field_validator("prep", "cook", "total", mode="before")(_to_text)


class DietaryInfo(BaseModel):
    """Nutrition per serving plus tags."""
    calories: float
    protein: Optional[str] = None  # e.g. "25g"
    carbs: Optional[str] = None
    fats: Optional[str] = None
    fiber: Optional[str] = None
    sodium: Optional[str] = None  # e.g. "480mg"
    dietaryTags: list[str] = []
    allergens: list[str] = []

    coerce_text = field_validator("protein", "carbs", "fats", "fiber", "sodium", mode="before")(_to_text)


class RecipePayload(BaseModel):
    """
    A complete recipe as generated by the assistant.

    Ingredients and steps must be non-empty and steps must be numbered
    1, 2, 3, ... with no gaps.
    """
    title: str = Field(min_length=1)
    ingredients: list[Ingredient] = Field(min_length=1)
    steps: list[RecipeStep] = Field(min_length=1)
    cookingTime: CookingTime
    servings: int = Field(gt=0)
    difficulty: Difficulty
    dietaryInfo: Optional[DietaryInfo] = None

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().capitalize()
        return value

    @field_validator("steps")
    @classmethod
    def steps_are_contiguous(cls, steps: list[RecipeStep]) -> list[RecipeStep]:
        numbers = [step.number for step in steps]
        if numbers != list(range(1, len(steps) + 1)):
            raise ValueError(f"step numbers must run 1..{len(steps)}, got {numbers}")
        return steps


# ============================================================
# Grocery list
# ============================================================

class GroceryListItem(BaseModel):
    name: str
    amount: str
    unit: Optional[str] = None
    usedIn: list[str] = []  # e.g. ["Day 1 Breakfast", "Day 2 Lunch"]

    coerce_text = field_validator("amount", "unit", mode="before")(_to_text)


class GroceryCategory(BaseModel):
    name: str  # e.g. "Produce"
    items: list[GroceryListItem]


class GroceryListPayload(BaseModel):
    categories: list[GroceryCategory]


# ============================================================
# Meal plan
# ============================================================

class GeneratedDay(BaseModel):
    """One day of a generated plan: meal type -> recipe."""
    dayNumber: int = Field(ge=1, le=PLAN_LENGTH_DAYS)
    meals: dict[MealType, RecipePayload] = Field(min_length=1)


class MealPlanPayload(BaseModel):
    """The full JSON object the meal plan assistant returns."""
    days: list[GeneratedDay] = Field(min_length=1)
    groceryList: Optional[GroceryListPayload] = None

    @model_validator(mode="after")
    def days_are_unique(self) -> "MealPlanPayload":
        numbers = [day.dayNumber for day in self.days]
        if len(numbers) != len(set(numbers)):
            raise ValueError(f"duplicate dayNumber in {numbers}")
        return self

    def slots(self) -> list[tuple[int, MealType, RecipePayload]]:
        """Every (day, meal type, recipe) in payload order."""
        return [
            (day.dayNumber, meal_type, recipe)
            for day in self.days
            for meal_type, recipe in day.meals.items()
        ]


class SwapMeal(BaseModel):
    """Selects the single slot a swap regenerates."""
    day: int = Field(ge=1, le=PLAN_LENGTH_DAYS)
    mealType: MealType


# ============================================================
# Generation requests
# ============================================================

class MealPlanRequest(BaseModel):
    """Request to generate a 3-day meal plan, or to swap one meal of an existing plan."""
    servings: int = Field(gt=0)
    dietaryNeeds: list[str] = []
    fitnessGoal: Optional[FitnessGoal] = None
    dislikedIngredients: list[str] = []
    startDate: date
    swapMeal: Optional[SwapMeal] = None
    mealPlanId: Optional[UUID] = None  # Required with swapMeal

    @model_validator(mode="after")
    def swap_needs_plan(self) -> "MealPlanRequest":
        if self.swapMeal is not None and self.mealPlanId is None:
            raise ValueError("mealPlanId is required when swapMeal is set")
        return self


class RecipeRequest(BaseModel):
    """Request to generate a single recipe."""
    desiredDish: str = Field(min_length=1)
    dietaryRestrictions: list[str] = []
    likedIngredients: str = ""
    dislikedIngredients: str = ""
    servingSize: int = Field(default=2, gt=0)
