"""
Billing API routes.

Minimal surface:
- POST /api/billing/checkout: Create checkout session for a paid tier
- POST /api/billing/webhook: Handle Stripe webhooks
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, HTTPException
from pydantic import BaseModel

from archilex.core.auth import get_current_account_id
from archilex.features.billing.service import (
    billing_enabled,
    start_checkout,
    process_webhook_event,
)
from archilex.features.billing.provider import BillingProviderError, BillingWebhookError

logger = logging.getLogger("archilex.billing")

router = APIRouter(prefix="/billing", tags=["billing"])


class CheckoutRequest(BaseModel):
    """Request to create checkout session."""
    plan: str
    success_url: Optional[str] = None
    cancel_url: Optional[str] = None


class CheckoutResponse(BaseModel):
    """Response with checkout URL."""
    url: str


def _billing_disabled() -> HTTPException:
    return HTTPException(status_code=503, detail="Billing disabled: Stripe is not configured")


@router.post("/checkout", response_model=CheckoutResponse)
def create_checkout(request: CheckoutRequest, account_id: str = Depends(get_current_account_id)):
    """
    Create Stripe checkout session.

    Errors:
        503: Billing disabled (STRIPE_SECRET_KEY not set)
        400: Unknown or unsold plan
        502: Stripe API error
    """
    if not billing_enabled():
        raise _billing_disabled()

    try:
        url = start_checkout(
            account_id=account_id,
            tier=request.plan,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
        )
    except BillingProviderError as e:
        logger.error("billing.checkout_failed", extra={"account_id": account_id, "error": str(e)})
        raise HTTPException(status_code=502, detail="Payment provider error")
    if not url:
        raise _billing_disabled()
    return {"url": url}


@router.post("/webhook")
async def handle_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Verifies signature, processes event idempotently, and applies the plan
    change. Event deduplication uses stripe_event_id (billing_events table).

    Errors:
        400: Invalid signature or payload
        503: Billing disabled
    """
    if not billing_enabled():
        raise _billing_disabled()

    # Raw body is required for signature verification
    body = await request.body()
    headers = dict(request.headers)

    try:
        result = process_webhook_event(headers, body)
    except BillingWebhookError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"received": True, "event_id": result.event_id}
