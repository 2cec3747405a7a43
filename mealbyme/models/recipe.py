"""SQLAlchemy models for standalone recipes and generation usage."""

from sqlalchemy import Column, String, Integer, DateTime, Date, Uuid, UniqueConstraint
from sqlalchemy.sql import func
import uuid

from mealbyme.db.database import Base, JSONType


class SavedRecipe(Base):
    """
    SavedRecipe model - a generated recipe the user bookmarked.
    
    Stores a full copy of the recipe so it survives independently of the
    generation that produced it.
    """
    __tablename__ = "saved_recipes"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    ingredients = Column(JSONType, nullable=False)
    steps = Column(JSONType, nullable=False)
    cooking_time = Column(JSONType, nullable=False)
    servings = Column(Integer, nullable=False)
    difficulty = Column(String(16), nullable=False)
    dietary_info = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    
    def __repr__(self):
        return f"<SavedRecipe user={self.user_id}: {self.title}>"


class RecipeGeneration(Base):
    """Per-user, per-day counter of single-recipe generations (free tier limit)."""
    
    __tablename__ = "recipe_generations"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False)
    count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_recipe_generations_user_date"),
    )
