"""
Migration 003: Create per-user account tables

- subscriptions: mirror of the Stripe subscription, upserted by webhooks
- billing_customers: user <-> Stripe customer mapping
- user_preferences: saved dietary preferences

Run with: python -m migrations.003_create_account_tables
"""

import asyncio
from sqlalchemy import text
from mealbyme.db.database import get_engine


TABLES = {
    "subscriptions": """
        CREATE TABLE subscriptions (
            user_id VARCHAR(64) PRIMARY KEY,
            status VARCHAR(16) NOT NULL DEFAULT 'inactive',
            stripe_customer_id VARCHAR(255),
            stripe_subscription_id VARCHAR(255),
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
        CREATE INDEX idx_subscriptions_customer ON subscriptions(stripe_customer_id);
    """,
    "billing_customers": """
        CREATE TABLE billing_customers (
            user_id VARCHAR(64) PRIMARY KEY,
            stripe_customer_id VARCHAR(255) NOT NULL UNIQUE,
            email VARCHAR(320),
            created_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
    """,
    "user_preferences": """
        CREATE TABLE user_preferences (
            user_id VARCHAR(64) PRIMARY KEY,
            dietary_restrictions JSONB NOT NULL DEFAULT '[]'::jsonb,
            favorite_ingredients JSONB NOT NULL DEFAULT '[]'::jsonb,
            disliked_ingredients JSONB NOT NULL DEFAULT '[]'::jsonb,
            updated_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
    """,
}


async def upgrade():
    """Create account tables that don't exist yet."""
    async with get_engine().begin() as conn:
        result = await conn.execute(text("""
            SELECT table_name 
            FROM information_schema.tables 
            WHERE table_name IN ('subscriptions', 'billing_customers', 'user_preferences')
        """))
        existing_tables = [row[0] for row in result.fetchall()]
        
        for table_name, ddl in TABLES.items():
            if table_name in existing_tables:
                print(f"  ⏭️  {table_name} already exists, skipping")
                continue
            for statement in ddl.split(";"):
                if statement.strip():
                    await conn.execute(text(statement))
            print(f"  ✅ Created {table_name}")
    
    print("✅ Migration complete!")


async def downgrade():
    """Remove account tables."""
    async with get_engine().begin() as conn:
        for table_name in reversed(list(TABLES)):
            await conn.execute(text(f"DROP TABLE IF EXISTS {table_name};"))
        print("✅ Downgrade complete: removed account tables")


if __name__ == "__main__":
    import sys
    if len(sys.argv) > 1 and sys.argv[1] == "down":
        asyncio.run(downgrade())
    else:
        asyncio.run(upgrade())
