"""SQLAlchemy models for generated meal plans."""

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Date, Uuid, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import uuid
import enum

from mealbyme.db.database import Base, JSONType


class MealType(str, enum.Enum):
    """Types of meals."""
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    DINNER = "dinner"
    SNACK = "snack"


class FitnessGoal(str, enum.Enum):
    WEIGHT_LOSS = "weight_loss"
    MUSCLE_GAIN = "muscle_gain"
    MAINTENANCE = "maintenance"


class GenerationStatus(str, enum.Enum):
    """Lifecycle of the plan's generated content."""
    PROCESSING = "processing"  # Provisional: written at submission, content pending
    COMPLETED = "completed"


# Meal plans always cover a fixed 3-day window
PLAN_LENGTH_DAYS = 3


class MealPlan(Base):
    """
    A 3-day meal plan.
    
    Written provisionally when generation is submitted so the browser has a
    stable id to resume polling against; items and the grocery list appear
    once the run is materialized.
    """
    __tablename__ = "meal_plans"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)  # Always start_date + 2 days
    servings = Column(Integer, nullable=False)
    dietary_needs = Column(JSONType, nullable=False, default=list)
    fitness_goal = Column(String(32), nullable=True)
    disliked_ingredients = Column(JSONType, nullable=False, default=list)
    generation_status = Column(String(16), nullable=False, default=GenerationStatus.PROCESSING.value)
    last_run_id = Column(String(64), nullable=True)  # Last assistant run materialized into this plan
    # Run submitted for this plan and not yet materialized; a swap run also
    # records the slot it regenerates
    pending_run_id = Column(String(64), nullable=True)
    pending_swap_day = Column(Integer, nullable=True)
    pending_swap_meal_type = Column(String(20), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    # Relationships
    items = relationship("MealPlanItem", back_populates="meal_plan", cascade="all, delete-orphan")
    groceries = relationship("MealPlanGrocery", back_populates="meal_plan", cascade="all, delete-orphan")
    
    def __repr__(self):
        return f"<MealPlan {self.id}: {self.start_date} -> {self.end_date}>"


class MealPlanRecipe(Base):
    """A recipe generated as part of a meal plan. Never updated after insert."""
    
    __tablename__ = "meal_plan_recipes"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    ingredients = Column(JSONType, nullable=False)  # [{name, amount, unit}]
    steps = Column(JSONType, nullable=False)  # [{number, instruction}]
    cooking_time = Column(JSONType, nullable=False)  # {prep, cook, total}
    servings = Column(Integer, nullable=False)
    difficulty = Column(String(16), nullable=False)  # Easy|Medium|Hard
    dietary_info = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<MealPlanRecipe {self.id}: {self.title}>"


class MealPlanItem(Base):
    """One (day, meal type) slot of a meal plan, pointing at its recipe."""
    
    __tablename__ = "meal_plan_items"
    __table_args__ = (UniqueConstraint("meal_plan_id", "day_number", "meal_type", name="uq_meal_plan_items_slot"),)
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_plan_id = Column(Uuid, ForeignKey("meal_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    day_number = Column(Integer, nullable=False)  # 1..3
    meal_type = Column(String(20), nullable=False)  # breakfast, lunch, dinner, snack
    recipe_id = Column(Uuid, ForeignKey("meal_plan_recipes.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    meal_plan = relationship("MealPlan", back_populates="items")
    recipe = relationship("MealPlanRecipe")
    
    def __repr__(self):
        return f"<MealPlanItem plan={self.meal_plan_id} day={self.day_number} {self.meal_type}>"


class MealPlanGrocery(Base):
    """Categorized grocery list for a whole meal plan."""
    
    __tablename__ = "meal_plan_groceries"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    meal_plan_id = Column(Uuid, ForeignKey("meal_plans.id", ondelete="CASCADE"), nullable=False, index=True)
    items = Column(JSONType, nullable=False)  # {categories: [{name, items: [...]}]}
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    # Relationships
    meal_plan = relationship("MealPlan", back_populates="groceries")
