"""SQLAlchemy models for per-user account state (billing + preferences)."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func

from mealbyme.db.database import Base, JSONType


class Subscription(Base):
    """
    Mirror of the user's Stripe subscription.
    
    One row per user, upserted on user_id by webhook events only.
    """
    __tablename__ = "subscriptions"
    
    user_id = Column(String(64), primary_key=True)
    status = Column(String(16), nullable=False, default="inactive")  # active|inactive
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    
    @property
    def is_active(self) -> bool:
        return self.status == "active"
    
    def __repr__(self):
        return f"<Subscription user={self.user_id}: {self.status}>"


class BillingCustomer(Base):
    """Which Stripe customer belongs to which user."""
    
    __tablename__ = "billing_customers"
    
    user_id = Column(String(64), primary_key=True)
    stripe_customer_id = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(320), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserPreferences(Base):
    """Saved food preferences used to prefill generation forms."""
    
    __tablename__ = "user_preferences"
    
    user_id = Column(String(64), primary_key=True)
    dietary_restrictions = Column(JSONType, nullable=False, default=list)
    favorite_ingredients = Column(JSONType, nullable=False, default=list)
    disliked_ingredients = Column(JSONType, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
