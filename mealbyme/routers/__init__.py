from .health import router as health_router
from .meal_plans import router as meal_plans_router
from .recipes import router as recipes_router
from .billing import router as billing_router
from .users import router as users_router

__all__ = ["health_router", "meal_plans_router", "recipes_router", "billing_router", "users_router"]
