"""Recipe API endpoints - single recipe generation and saved recipes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete
from sqlalchemy.exc import SQLAlchemyError
from pydantic import BaseModel, ConfigDict
from uuid import UUID
from typing import Optional, List
from datetime import datetime

from mealbyme.db import get_db
from mealbyme.auth import get_current_user, AuthUser
from mealbyme.errors import NotFoundError, classify_storage_error
from mealbyme.models.recipe import SavedRecipe
from mealbyme.models.schemas import RecipePayload, RecipeRequest
from mealbyme.services.generation import GenerationService, get_generation_service
from mealbyme.services.materializer import recipe_columns
from mealbyme.services.usage import check_recipe_allowance, increment_daily_generations

router = APIRouter(prefix="/api/recipes", tags=["recipes"])


class SavedRecipeResponse(BaseModel):
    """A saved recipe row."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    ingredients: List[dict]
    steps: List[dict]
    cooking_time: dict
    servings: int
    difficulty: str
    dietary_info: Optional[dict] = None
    created_at: Optional[datetime] = None


@router.post("/generate", response_model=RecipePayload)
async def generate_recipe(
    request: RecipeRequest,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    service: GenerationService = Depends(get_generation_service),
):
    """
    Generate one recipe and wait for it.

    Free accounts get a fixed number of generations per UTC day; only a
    successful generation counts against it.
    """
    await check_recipe_allowance(db, user.id)

    recipe = await service.generate_recipe(request)

    await increment_daily_generations(db, user.id)
    return recipe


@router.post("/saved", response_model=SavedRecipeResponse, status_code=201)
async def save_recipe(
    recipe: RecipePayload,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Save a generated recipe to the user's collection."""
    saved = SavedRecipe(user_id=user.id, **recipe_columns(recipe))
    try:
        db.add(saved)
        await db.commit()
        await db.refresh(saved)
    except SQLAlchemyError as e:
        await db.rollback()
        raise classify_storage_error(e)

    print(f"✅ Saved recipe '{saved.title}' for {user.id}")
    return saved


@router.get("/saved", response_model=List[SavedRecipeResponse])
async def list_saved_recipes(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """List the user's saved recipes, newest first."""
    try:
        result = await db.execute(
            select(SavedRecipe)
            .where(SavedRecipe.user_id == user.id)
            .order_by(SavedRecipe.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
    except SQLAlchemyError as e:
        raise classify_storage_error(e)
    return result.scalars().all()


@router.delete("/saved/{recipe_id}")
async def delete_saved_recipe(
    recipe_id: UUID,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
):
    """Remove a saved recipe. Only the owner can delete it."""
    try:
        result = await db.execute(
            delete(SavedRecipe)
            .where(SavedRecipe.id == recipe_id, SavedRecipe.user_id == user.id)
            .returning(SavedRecipe.id)
        )
        deleted = result.scalar_one_or_none()
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise classify_storage_error(e)

    if deleted is None:
        raise NotFoundError("Recipe not found")

    return {"deleted": True, "id": str(recipe_id)}
