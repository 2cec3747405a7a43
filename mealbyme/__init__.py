"""MealByMe - AI recipe and meal plan generation API."""

__version__ = "1.0.0"
