"""
Migration 001: Create meal plan tables

Creates:
- meal_plans: one row per 3-day plan (provisional until generation completes)
- meal_plan_recipes: recipes generated for plans
- meal_plan_items: (day, meal type) slots linking a plan to a recipe
- meal_plan_groceries: categorized grocery list per plan

Run with: python -m migrations.001_create_meal_plans
"""

import asyncio
from sqlalchemy import text
from mealbyme.db.database import get_engine


async def upgrade():
    """Create meal plan tables."""
    async with get_engine().begin() as conn:
        result = await conn.execute(text("""
            SELECT table_name 
            FROM information_schema.tables 
            WHERE table_name = 'meal_plans'
        """))
        
        if result.scalar_one_or_none() is not None:
            print("ℹ️ Table 'meal_plans' already exists. Skipping.")
            return
        
        await conn.execute(text("""
            CREATE TABLE meal_plans (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                user_id VARCHAR(64) NOT NULL,
                start_date DATE NOT NULL,
                end_date DATE NOT NULL,
                servings INTEGER NOT NULL,
                dietary_needs JSONB NOT NULL DEFAULT '[]'::jsonb,
                fitness_goal VARCHAR(32),
                disliked_ingredients JSONB NOT NULL DEFAULT '[]'::jsonb,
                generation_status VARCHAR(16) NOT NULL DEFAULT 'processing',
                last_run_id VARCHAR(64),
                pending_run_id VARCHAR(64),
                pending_swap_day INTEGER,
                pending_swap_meal_type VARCHAR(20),
                created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                CHECK (end_date = start_date + 2)
            );
        """))
        await conn.execute(text("""
            CREATE INDEX idx_meal_plans_user_id ON meal_plans(user_id);
        """))
        await conn.execute(text("""
            CREATE INDEX idx_meal_plans_processing ON meal_plans(created_at)
            WHERE generation_status = 'processing';
        """))
        print("✅ Created meal_plans table")
        
        await conn.execute(text("""
            CREATE TABLE meal_plan_recipes (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
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
        print("✅ Created meal_plan_recipes table")
        
        await conn.execute(text("""
            CREATE TABLE meal_plan_items (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                meal_plan_id UUID NOT NULL REFERENCES meal_plans(id) ON DELETE CASCADE,
                day_number INTEGER NOT NULL CHECK (day_number BETWEEN 1 AND 3),
                meal_type VARCHAR(20) NOT NULL,
                recipe_id UUID NOT NULL REFERENCES meal_plan_recipes(id) ON DELETE CASCADE,
                created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW(),
                CONSTRAINT uq_meal_plan_items_slot UNIQUE (meal_plan_id, day_number, meal_type)
            );
        """))
        await conn.execute(text("""
            CREATE INDEX idx_meal_plan_items_plan ON meal_plan_items(meal_plan_id, day_number);
        """))
        print("✅ Created meal_plan_items table")
        
        await conn.execute(text("""
            CREATE TABLE meal_plan_groceries (
                id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
                meal_plan_id UUID NOT NULL REFERENCES meal_plans(id) ON DELETE CASCADE,
                items JSONB NOT NULL,
                created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
            );
        """))
        await conn.execute(text("""
            CREATE INDEX idx_meal_plan_groceries_plan ON meal_plan_groceries(meal_plan_id);
        """))
        print("✅ Created meal_plan_groceries table")


async def downgrade():
    """Remove meal plan tables."""
    async with get_engine().begin() as conn:
        await conn.execute(text("DROP TABLE IF EXISTS meal_plan_groceries;"))
        await conn.execute(text("DROP TABLE IF EXISTS meal_plan_items;"))
        await conn.execute(text("DROP TABLE IF EXISTS meal_plan_recipes;"))
        await conn.execute(text("DROP TABLE IF EXISTS meal_plans;"))
        print("✅ Downgrade complete: removed meal plan tables")


if __name__ == "__main__":
    import sys
    if len(sys.argv) > 1 and sys.argv[1] == "down":
        asyncio.run(downgrade())
    else:
        asyncio.run(upgrade())
