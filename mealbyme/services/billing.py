"""Stripe billing service: customers, hosted checkout/portal sessions, webhook events."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

import stripe

from mealbyme.config import get_settings
from mealbyme.errors import ConfigurationError, SignatureVerificationError, UpstreamServiceError


@dataclass
class CustomerLookup:
    """Result of find-or-create by email."""
    customer_id: str
    is_existing: bool


class BillingService:
    """
    Wraps the Stripe client so every failure comes out classified.

    API calls use the SDK's *_async methods; only webhook verification,
    which is local, stays synchronous.
    """

    def __init__(
        self,
        client: stripe.StripeClient,
        price_id: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.client = client
        self.price_id = price_id
        self.webhook_secret = webhook_secret

    async def find_or_create_customer(self, email: Optional[str], user_id: Optional[str] = None) -> CustomerLookup:
        """
        Reuse the customer registered under email, or create one.

        Idempotent for repeated calls with the same email because of the
        lookup, not because of any uniqueness constraint on Stripe's side.
        Without an email a new customer is always created.
        """
        try:
            if email:
                existing = await self.client.customers.list_async(params={"email": email, "limit": 1})
                if existing.data:
                    print(f"✅ Found existing Stripe customer {existing.data[0].id}")
                    return CustomerLookup(customer_id=existing.data[0].id, is_existing=True)

            params = {"metadata": {"source": "mealbyme"}}
            if email:
                params["email"] = email
            if user_id:
                params["metadata"]["user_id"] = user_id
            customer = await self.client.customers.create_async(params=params)
        except stripe.StripeError as e:
            print(f"❌ Stripe customer lookup failed: {e.user_message or e}")
            raise UpstreamServiceError("Failed to create customer", detail=str(e))

        print(f"✅ Created Stripe customer {customer.id}")
        return CustomerLookup(customer_id=customer.id, is_existing=False)

    async def create_checkout_session(self, customer_id: str, user_id: str, origin: str):
        """
        Hosted checkout for the premium price.

        The user id rides along as client_reference_id and as subscription
        metadata so webhook events can be traced back to the user.
        """
        if not self.price_id:
            raise ConfigurationError("STRIPE_PRICE_ID")

        try:
            return await self.client.checkout.sessions.create_async(params={
                "customer": customer_id,
                "payment_method_types": ["card"],
                "line_items": [{"price": self.price_id, "quantity": 1}],
                "mode": "subscription",
                "success_url": f"{origin}/subscription/success?session_id={{CHECKOUT_SESSION_ID}}",
                "cancel_url": f"{origin}/subscription/cancel",
                "client_reference_id": user_id,
                "subscription_data": {"metadata": {"user_id": user_id}},
            })
        except stripe.StripeError as e:
            print(f"❌ Stripe checkout session failed: {e}")
            raise UpstreamServiceError("Failed to create checkout session", detail=str(e))

    async def create_portal_session(self, customer_id: str, return_url: str):
        """Hosted self-service billing management for an existing customer."""
        try:
            return await self.client.billing_portal.sessions.create_async(params={
                "customer": customer_id,
                "return_url": return_url,
            })
        except stripe.StripeError as e:
            print(f"❌ Stripe portal session failed: {e}")
            raise UpstreamServiceError("Failed to create portal session", detail=str(e))

    async def get_customer_email(self, customer_id: str) -> Optional[str]:
        try:
            customer = await self.client.customers.retrieve_async(customer_id)
        except stripe.StripeError as e:
            raise UpstreamServiceError("Failed to retrieve customer", detail=str(e))
        return getattr(customer, "email", None)

    def construct_event(self, payload: bytes, signature: Optional[str]) -> stripe.Event:
        """
        Verify the signature header against the webhook secret and parse the event.

        Nothing in the body is trusted before this returns.
        """
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET")
        if not signature:
            raise SignatureVerificationError("No signature provided")

        try:
            return self.client.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            print("⚠️ Webhook signature verification failed")
            raise SignatureVerificationError("Webhook signature verification failed", detail=str(e))
        except ValueError as e:
            raise SignatureVerificationError("Invalid webhook payload", detail=str(e))


@lru_cache
def get_billing_service() -> BillingService:
    """Process-wide billing service. Refuses to build without a secret key."""
    settings = get_settings()
    if not settings.stripe_secret_key:
        print("❌ STRIPE_SECRET_KEY is not set")
        raise ConfigurationError("STRIPE_SECRET_KEY")
    return BillingService(
        stripe.StripeClient(settings.stripe_secret_key),
        price_id=settings.stripe_price_id,
        webhook_secret=settings.stripe_webhook_secret,
    )
