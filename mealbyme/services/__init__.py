"""Services module for meal plan generation, billing and usage."""

from .assistant import AssistantService, JobHandle, get_assistant_service
from .poller import RunPoller, RunState, PollResult
from .generation import GenerationService, PollOutcome, get_generation_service
from .billing import BillingService, get_billing_service
from .clerk import ClerkAdminService, get_clerk_admin, get_optional_clerk_admin
from .reconciler import BillingEventReconciler

__all__ = [
    "AssistantService",
    "JobHandle",
    "get_assistant_service",
    "RunPoller",
    "RunState",
    "PollResult",
    "GenerationService",
    "PollOutcome",
    "get_generation_service",
    "BillingService",
    "get_billing_service",
    "ClerkAdminService",
    "get_clerk_admin",
    "get_optional_clerk_admin",
    "BillingEventReconciler",
]
