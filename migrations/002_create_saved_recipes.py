"""
Migration 002: Create saved_recipes and recipe_generations tables

- saved_recipes: full copies of generated recipes a user kept
- recipe_generations: per-user, per-day counter for the free tier limit

Run with: python -m migrations.002_create_saved_recipes
"""

import asyncio
from sqlalchemy import text
from mealbyme.db.database import get_engine


async def upgrade():
    """Create saved_recipes and recipe_generations tables."""
    async with get_engine().begin() as conn:
        result = await conn.execute(text("""
            SELECT table_name 
            FROM information_schema.tables 
            WHERE table_name IN ('saved_recipes', 'recipe_generations')
        """))
        existing_tables = [row[0] for row in result.fetchall()]
        
        if 'saved_recipes' not in existing_tables:
            await conn.execute(text("""
                CREATE TABLE saved_recipes (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    user_id VARCHAR(64) NOT NULL,
                    title VARCHAR(255) NOT NULL,
                    ingredients JSONB NOT NULL,
                    steps JSONB NOT NULL,
                    cooking_time JSONB NOT NULL,
                    servings INTEGER NOT NULL,
                    difficulty VARCHAR(16) NOT NULL,
                    dietary_info JSONB,
                    created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
                );
            """))
            await conn.execute(text("""
                CREATE INDEX idx_saved_recipes_user_id ON saved_recipes(user_id, created_at DESC);
            """))
            print("✅ Created saved_recipes table")
        else:
            print("⏭️  saved_recipes already exists, skipping")
        
        if 'recipe_generations' not in existing_tables:
            await conn.execute(text("""
                CREATE TABLE recipe_generations (
                    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                    user_id VARCHAR(64) NOT NULL,
                    date DATE NOT NULL,
                    count INTEGER NOT NULL DEFAULT 0,
                    updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                    CONSTRAINT uq_recipe_generations_user_date UNIQUE (user_id, date)
                );
            """))
            print("✅ Created recipe_generations table")
        else:
            print("⏭️  recipe_generations already exists, skipping")


async def downgrade():
    """Remove saved_recipes and recipe_generations tables."""
    async with get_engine().begin() as conn:
        await conn.execute(text("DROP TABLE IF EXISTS recipe_generations;"))
        await conn.execute(text("DROP TABLE IF EXISTS saved_recipes;"))
        print("✅ Downgrade complete: removed saved_recipes and recipe_generations")


if __name__ == "__main__":
    import sys
    if len(sys.argv) > 1 and sys.argv[1] == "down":
        asyncio.run(downgrade())
    else:
        asyncio.run(upgrade())
