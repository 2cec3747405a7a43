"""
Billing endpoints - the only code that holds the Stripe secrets.

- POST /api/billing/create-customer
- POST /api/billing/create-checkout-session
- POST /api/billing/create-portal-session
- POST /api/billing/webhook
"""

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import Optional
import sentry_sdk

from mealbyme.db import get_db, upsert
from mealbyme.auth import get_current_user, AuthUser
from mealbyme.config import get_settings
from mealbyme.errors import AppError, ValidationError, classify_storage_error
from mealbyme.models.account import BillingCustomer
from mealbyme.services.billing import BillingService, get_billing_service
from mealbyme.services.clerk import ClerkAdminService, get_optional_clerk_admin
from mealbyme.services.reconciler import BillingEventReconciler

router = APIRouter(prefix="/api/billing", tags=["billing"])


# ============================================================
# Pydantic Schemas
# ============================================================

class CreateCustomerRequest(BaseModel):
    email: Optional[str] = None


class CreateCustomerResponse(BaseModel):
    customerId: str
    isExisting: bool


class CheckoutSessionResponse(BaseModel):
    sessionId: str
    url: Optional[str] = None


class PortalSessionRequest(BaseModel):
    returnUrl: Optional[str] = None


class PortalSessionResponse(BaseModel):
    url: str


class WebhookResponse(BaseModel):
    received: bool = True
    type: str


# ============================================================
# Helper Functions
# ============================================================

def _origin(request: Request) -> str:
    """Where hosted Stripe pages send the browser back to."""
    return (request.headers.get("origin") or get_settings().app_url).rstrip("/")


async def _known_customer_id(db: AsyncSession, user: AuthUser) -> Optional[str]:
    """The user's Stripe customer id from their token, else from billing_customers."""
    if user.stripe_customer_id:
        return user.stripe_customer_id
    try:
        result = await db.execute(
            select(BillingCustomer.stripe_customer_id).where(BillingCustomer.user_id == user.id)
        )
    except SQLAlchemyError as e:
        raise classify_storage_error(e)
    return result.scalar_one_or_none()


async def _remember_customer(
    db: AsyncSession,
    user: AuthUser,
    customer_id: str,
    clerk: Optional[ClerkAdminService],
) -> None:
    """Persist a customer id on our side and on the Clerk user record."""
    try:
        await upsert(
            db,
            BillingCustomer,
            {"user_id": user.id, "stripe_customer_id": customer_id, "email": user.email},
            conflict_columns=["user_id"],
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        raise classify_storage_error(e)

    if clerk is None:
        print("⚠️ CLERK_SECRET_KEY not set, Stripe customer id stored locally only")
        return
    try:
        await clerk.update_public_metadata(user.id, {**user.public_metadata, "stripe_customer_id": customer_id})
    except AppError as e:
        # billing_customers already maps the customer, so checkout still works
        print(f"⚠️ Could not store Stripe customer id on Clerk user {user.id}: {e.detail or e.message}")


# ============================================================
# Endpoints
# ============================================================

@router.post("/create-customer", response_model=CreateCustomerResponse)
async def create_customer(
    body: Optional[CreateCustomerRequest] = Body(default=None),
    billing: BillingService = Depends(get_billing_service),
):
    """Find the Stripe customer for an email, creating it if there is none."""
    if body is None or not body.email or not body.email.strip():
        raise ValidationError("Email is required")

    lookup = await billing.find_or_create_customer(body.email.strip())
    return CreateCustomerResponse(customerId=lookup.customer_id, isExisting=lookup.is_existing)


@router.post("/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: Request,
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
    clerk: Optional[ClerkAdminService] = Depends(get_optional_clerk_admin),
):
    """
    Start a hosted checkout for the premium subscription.

    A Stripe customer is created on first checkout and remembered for the
    user, so later checkouts and the portal reuse it.
    """
    customer_id = await _known_customer_id(db, user)
    if not customer_id:
        lookup = await billing.find_or_create_customer(user.email, user_id=user.id)
        customer_id = lookup.customer_id
        await _remember_customer(db, user, customer_id, clerk)

    session = await billing.create_checkout_session(customer_id, user.id, _origin(request))
    print(f"✅ Checkout session {session.id} for {user.id}")
    return CheckoutSessionResponse(sessionId=session.id, url=session.url)


@router.post("/create-portal-session", response_model=PortalSessionResponse)
async def create_portal_session(
    request: Request,
    body: Optional[PortalSessionRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    billing: BillingService = Depends(get_billing_service),
):
    """Open the Stripe billing portal. Never creates a customer."""
    customer_id = await _known_customer_id(db, user)
    if not customer_id:
        raise ValidationError("No billing account found. Subscribe first to manage billing.")

    return_url = (body.returnUrl if body else None) or f"{_origin(request)}/profile"
    session = await billing.create_portal_session(customer_id, return_url)
    return PortalSessionResponse(url=session.url)


@router.post("/webhook", response_model=WebhookResponse)
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    billing: BillingService = Depends(get_billing_service),
    clerk: Optional[ClerkAdminService] = Depends(get_optional_clerk_admin),
):
    """
    Receive a Stripe event.

    The signature is verified before anything in the body is used. Once an
    event is verified it is acknowledged even if reconciling it fails;
    such failures are printed and reported to Sentry.
    """
    payload = await request.body()
    event = billing.construct_event(payload, request.headers.get("stripe-signature"))
    print(f"📨 Webhook received: {event['type']}")

    reconciler = BillingEventReconciler(db, billing=billing, clerk=clerk)
    try:
        await reconciler.reconcile(event)
    except Exception as e:
        print(f"❌ Failed to reconcile {event['type']}: {e}")
        sentry_sdk.capture_exception(e)

    return WebhookResponse(type=event["type"])
