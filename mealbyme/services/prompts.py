"""Prompts for the meal plan and recipe assistants."""

from typing import Optional

from mealbyme.models.schemas import SwapMeal


RECIPE_JSON_SHAPE = """{
  "title": "Recipe name",
  "ingredients": [{"name": "ingredient", "amount": "amount", "unit": "unit"}],
  "steps": [{"number": 1, "instruction": "step instruction"}],
  "cookingTime": {"prep": "time", "cook": "time", "total": "time"},
  "servings": number,
  "difficulty": "Easy/Medium/Hard",
  "dietaryInfo": {
    "calories": number,
    "protein": "amount in grams",
    "carbs": "amount in grams",
    "fats": "amount in grams",
    "fiber": "amount in grams",
    "sodium": "amount in mg",
    "dietaryTags": [],
    "allergens": []
  }
}"""


def _join(values: list[str]) -> str:
    return ", ".join(values) if values else "none"


def get_meal_plan_prompt(
    servings: int,
    dietary_needs: list[str],
    fitness_goal: Optional[str],
    disliked_ingredients: list[str],
    swap_meal: Optional[SwapMeal] = None,
) -> str:
    """
    Generate the 3-day meal plan prompt.

    With swap_meal set, the assistant is asked for that single meal only,
    in the same nested shape (one day, one meal, no grocery list).
    """
    if swap_meal:
        day = swap_meal.day
        meal_type = swap_meal.mealType.value
        return f"""Create ONE replacement recipe for Day {day} {meal_type} of a 3-day meal plan.

Preferences:
- Servings: {servings}
- Dietary needs: {_join(dietary_needs)}
- Fitness goal: {fitness_goal or 'none'}
- Disliked ingredients: {_join(disliked_ingredients)}

Please provide the meal in JSON format with exactly this structure:
{{
  "days": [
    {{
      "dayNumber": {day},
      "meals": {{
        "{meal_type}": {RECIPE_JSON_SHAPE}
      }}
    }}
  ]
}}

IMPORTANT:
- Generate ONLY Day {day} {meal_type}; do not include any other day or meal
- Do not include a groceryList
- Ensure the recipe aligns with the dietary needs and fitness goal
- Adjust all ingredient amounts to match the specified serving size
- Number steps 1, 2, 3, ... in order
- Include only the JSON response, no additional text"""

    return f"""Create a 3-day meal plan with the following requirements:

Preferences:
- Servings: {servings}
- Dietary needs: {_join(dietary_needs)}
- Fitness goal: {fitness_goal or 'none'}
- Disliked ingredients: {_join(disliked_ingredients)}

Requirements:
- Create meals for breakfast, lunch, dinner, and one snack for each day
- Suggest meals that use overlapping ingredients to reduce food waste
- Include detailed recipes for each meal
- Include nutritional information and dietary tags
- Generate a consolidated grocery list

Please provide the meal plan in JSON format with the following structure:
{{
  "days": [
    {{
      "dayNumber": 1,
      "meals": {{
        "breakfast": {RECIPE_JSON_SHAPE},
        "lunch": {{ ... }},
        "dinner": {{ ... }},
        "snack": {{ ... }}
      }}
    }}
  ],
  "groceryList": {{
    "categories": [
      {{
        "name": "Produce",
        "items": [
          {{
            "name": "ingredient",
            "amount": "total amount",
            "unit": "unit",
            "usedIn": ["Day 1 Breakfast", "Day 2 Lunch"]
          }}
        ]
      }}
    ]
  }}
}}

IMPORTANT:
- Ensure all recipes align with the dietary needs and fitness goal
- Adjust all ingredient amounts to match the specified serving size
- Group similar ingredients in the grocery list
- Note which meals use shared ingredients
- Number steps 1, 2, 3, ... in order
- Include only the JSON response, no additional text"""


def get_recipe_prompt(
    desired_dish: str,
    serving_size: int,
    dietary_restrictions: list[str],
    liked_ingredients: str = "",
    disliked_ingredients: str = "",
) -> str:
    """Generate the single recipe prompt."""
    people = "person" if serving_size == 1 else "people"
    restrictions = (
        f"\nDietary restrictions: {', '.join(dietary_restrictions)}"
        if dietary_restrictions else ""
    )
    shape = RECIPE_JSON_SHAPE.replace('"servings": number', f'"servings": {serving_size}')

    return f"""Create a recipe based on these preferences:
Desired dish: {desired_dish}{restrictions}
Liked ingredients: {liked_ingredients or 'none'}
Disliked ingredients: {disliked_ingredients or 'none'}
Serving size: {serving_size} {people}

Please provide a detailed recipe in JSON format with the following structure:
{shape}

IMPORTANT:
- Adjust all ingredient amounts to exactly match the specified serving size of {serving_size} {people}
- Number steps 1, 2, 3, ... in order
- Respond with ONLY the JSON object, no additional text.
- ALWAYS include detailed nutritional information in the dietaryInfo object."""
