"""
Billing event reconciler.

Turns one verified Stripe event into an upsert of the user's subscription
row. Events may arrive twice or out of order; the upsert keyed on user_id
makes a replay a no-op and the latest delivery wins.

User resolution, first hit wins:
1. the user id the checkout flow stamped on the object
   (client_reference_id, or metadata.user_id)
2. the billing_customers row for the Stripe customer id
3. the customer's email, looked up in Clerk
"""

from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from mealbyme.config import get_settings
from mealbyme.db.upsert import upsert
from mealbyme.errors import AppError, classify_storage_error
from mealbyme.models.account import BillingCustomer, Subscription
from mealbyme.services.billing import BillingService
from mealbyme.services.clerk import ClerkAdminService
from mealbyme.services.retry import retry_operation


CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

HANDLED_EVENTS = (CHECKOUT_COMPLETED, SUBSCRIPTION_UPDATED, SUBSCRIPTION_DELETED)


def map_subscription_status(stripe_status: Optional[str]) -> str:
    """Only Stripe's literal "active" counts; past_due, trialing, canceled... are inactive."""
    return "active" if stripe_status == "active" else "inactive"


class BillingEventReconciler:
    def __init__(
        self,
        db: AsyncSession,
        billing: Optional[BillingService] = None,
        clerk: Optional[ClerkAdminService] = None,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
    ):
        settings = get_settings()
        self.db = db
        self.billing = billing
        self.clerk = clerk
        self.max_attempts = max_attempts or settings.retry_max_attempts
        self.base_delay = settings.retry_base_delay_seconds if base_delay is None else base_delay

    async def reconcile(self, event: Mapping[str, Any]) -> Optional[str]:
        """
        Apply one event. Returns the resolved user id, or None when the
        event was ignored or its user could not be found.
        """
        event_type = event["type"]
        obj = event["data"]["object"]

        if event_type not in HANDLED_EVENTS:
            print(f"📨 Ignoring webhook event {event_type}")
            return None

        customer_id = obj.get("customer")
        if not customer_id:
            print(f"⚠️ {event_type} has no customer, skipping")
            return None

        if event_type == CHECKOUT_COMPLETED:
            stamped_user_id = obj.get("client_reference_id") or (obj.get("metadata") or {}).get("user_id")
            email = (obj.get("customer_details") or {}).get("email") or obj.get("customer_email")
            status = "active"
            subscription_id = obj.get("subscription")
        else:
            stamped_user_id = (obj.get("metadata") or {}).get("user_id")
            email = None
            status = map_subscription_status(obj.get("status"))
            subscription_id = obj.get("id")

        user_id = await self.resolve_user(customer_id, stamped_user_id, email)
        if not user_id:
            print(f"⚠️ Could not find user for Stripe customer {customer_id}, dropping {event_type}")
            return None

        await retry_operation(
            lambda: self._upsert_subscription(user_id, status, customer_id, subscription_id),
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            label="subscription upsert",
        )
        print(f"✅ Subscription for {user_id} is now {status} ({event_type})")
        return user_id

    async def resolve_user(
        self,
        customer_id: str,
        stamped_user_id: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[str]:
        if stamped_user_id:
            return stamped_user_id

        try:
            result = await self.db.execute(
                select(BillingCustomer.user_id).where(BillingCustomer.stripe_customer_id == customer_id)
            )
        except SQLAlchemyError as e:
            raise classify_storage_error(e)
        user_id = result.scalar_one_or_none()
        if user_id:
            return user_id

        if self.clerk is None:
            return None

        if not email and self.billing is not None:
            email = await self.billing.get_customer_email(customer_id)
        if not email:
            return None

        try:
            return await self.clerk.find_user_id_by_email(email)
        except AppError as e:
            print(f"⚠️ Email lookup failed for customer {customer_id}: {e.message}")
            return None

    async def _upsert_subscription(
        self,
        user_id: str,
        status: str,
        customer_id: str,
        subscription_id: Optional[str],
    ) -> None:
        try:
            await upsert(
                self.db,
                Subscription,
                {
                    "user_id": user_id,
                    "status": status,
                    "stripe_customer_id": customer_id,
                    "stripe_subscription_id": subscription_id,
                    "updated_at": func.now(),
                },
                conflict_columns=["user_id"],
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise classify_storage_error(e)
