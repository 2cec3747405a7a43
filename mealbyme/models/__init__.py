from .meal_plan import MealPlan, MealPlanRecipe, MealPlanItem, MealPlanGrocery, MealType, FitnessGoal, GenerationStatus
from .recipe import SavedRecipe, RecipeGeneration
from .account import Subscription, BillingCustomer, UserPreferences

__all__ = [
    "MealPlan",
    "MealPlanRecipe",
    "MealPlanItem",
    "MealPlanGrocery",
    "MealType",
    "FitnessGoal",
    "GenerationStatus",
    "SavedRecipe",
    "RecipeGeneration",
    "Subscription",
    "BillingCustomer",
    "UserPreferences",
]
