"""
Billing service orchestrator.

Coordinates:
- Checkout for paid tiers
- Webhook verification and idempotent processing
- Plan synchronization through the plan transition handler

All Stripe-specific code is in stripe_provider.py.
"""
import hashlib
import logging
from typing import Optional, Dict, Any, List
from datetime import datetime
from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError

from archilex.core.clock import normalize_now, utc_now
from archilex.core.config import settings
from archilex.core.database import get_db_session, billing_events
from archilex.core.errors import ValidationError
from archilex.features.accounts.service import get_account
from archilex.features.billing.provider import (
    BillingProvider,
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)
from archilex.features.billing.stripe_provider import StripeProvider
from archilex.features.plans.registry import PURCHASABLE_TIERS, parse_tier, stripe_price_id
from archilex.features.plans.service import set_plan
from archilex.models.plan import PlanTier

logger = logging.getLogger("archilex.billing")

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


def billing_enabled() -> bool:
    """Check if billing is enabled (Stripe configured)."""
    return bool(settings.STRIPE_SECRET_KEY)


def get_provider() -> Optional[BillingProvider]:
    """Get billing provider if billing is enabled."""
    if not billing_enabled():
        return None
    try:
        return StripeProvider()
    except BillingProviderError:
        return None


def _default_urls() -> Dict[str, str]:
    base = settings.APP_URL.rstrip("/")
    return {
        "success_url": f"{base}/dashboard?status=success&session_id={{CHECKOUT_SESSION_ID}}",
        "cancel_url": f"{base}/dashboard?status=cancel",
    }


def start_checkout(
    account_id: str,
    tier: str,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> Optional[str]:
    """
    Start a checkout session for a paid tier.

    Returns:
        Checkout URL, or None if billing disabled

    Raises:
        UnknownPlanTierError: tier is not registered
        ValidationError: tier is not sold or has no Stripe price
        NotFoundError: unknown account
        BillingProviderError: Stripe call failed
    """
    provider = get_provider()
    if not provider:
        return None

    plan_tier = parse_tier(tier)
    if plan_tier not in PURCHASABLE_TIERS:
        raise ValidationError(f"Plan {plan_tier.value} cannot be purchased")
    price_id = stripe_price_id(plan_tier)
    if not price_id:
        raise ValidationError(f"No Stripe price configured for plan: {plan_tier.value}")

    account = get_account(account_id)
    urls = _default_urls()
    url = provider.create_checkout_session(
        account_id=account.account_id,
        email=account.email,
        tier=plan_tier.value,
        price_id=price_id,
        success_url=success_url or urls["success_url"],
        cancel_url=cancel_url or urls["cancel_url"],
    )
    logger.info("billing.checkout_started", extra={"account_id": account_id, "plan": plan_tier.value})
    return url


def apply_webhook_result(result: BillingWebhookResult, now: Optional[datetime] = None) -> None:
    """Apply a verified event to the account's plan."""
    if not result.account_id:
        logger.warning("billing.event_without_account", extra={"event_id": result.event_id, "event_type": result.event_type})
        return

    if result.event_type == CHECKOUT_COMPLETED:
        if not result.tier:
            raise BillingWebhookError(f"Event {result.event_id} carries no plan")
        set_plan(result.account_id, result.tier, source="payment", actor=result.event_id, now=now)
    elif result.event_type == SUBSCRIPTION_DELETED:
        set_plan(result.account_id, PlanTier.FREE, source="cancellation", actor=result.event_id, now=now)
    else:
        logger.info("billing.event_ignored", extra={"event_id": result.event_id, "event_type": result.event_type})


def process_webhook_event(headers: Dict[str, str], body: bytes, now: Optional[datetime] = None) -> BillingWebhookResult:
    """
    Process billing webhook event (idempotent).

    1. Verify signature
    2. Check idempotency (skip if already processed; retry if it failed earlier)
    3. Apply plan change
    4. Mark as processed (or record the error and re-raise)

    Raises:
        BillingWebhookError: If billing disabled, signature invalid or processing fails
    """
    provider = get_provider()
    if not provider:
        raise BillingWebhookError("Billing not enabled")

    result = provider.handle_webhook(headers, body)
    payload_hash = hashlib.sha256(body).hexdigest()
    now = normalize_now(now)

    try:
        with get_db_session() as session:
            existing = session.execute(
                select(billing_events.c.processed).where(
                    billing_events.c.stripe_event_id == result.event_id
                )
            ).fetchone()
            if existing is not None and existing.processed:
                logger.info("billing.duplicate_event", extra={"event_id": result.event_id})
                return result

            if existing is None:
                session.execute(
                    insert(billing_events).values(
                        stripe_event_id=result.event_id,
                        event_type=result.event_type,
                        payload_hash=payload_hash,
                        processed=False,
                        received_at=now,
                    )
                )
            else:
                # An earlier delivery failed before completing; apply it again
                logger.info("billing.retrying_event", extra={"event_id": result.event_id, "event_type": result.event_type})
    except IntegrityError:
        # Another worker recorded this event first
        return result

    try:
        apply_webhook_result(result, now=now)
        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == result.event_id)
                .values(processed=True, processed_at=utc_now(), error=None)
            )
    except Exception as e:
        with get_db_session() as session:
            session.execute(
                update(billing_events)
                .where(billing_events.c.stripe_event_id == result.event_id)
                .values(error=str(e)[:500])
            )
        logger.error("billing.event_failed", extra={"event_id": result.event_id, "event_type": result.event_type})
        raise

    logger.info("billing.event_processed", extra={"event_id": result.event_id, "event_type": result.event_type})
    return result


def list_billing_events(limit: int = 50) -> List[Dict[str, Any]]:
    """Most recent webhook events, for the admin view."""
    with get_db_session() as session:
        rows = session.execute(
            select(billing_events).order_by(billing_events.c.received_at.desc(), billing_events.c.id.desc()).limit(limit)
        ).all()
    return [
        {
            "stripe_event_id": row.stripe_event_id,
            "event_type": row.event_type,
            "processed": bool(row.processed),
            "error": row.error,
        }
        for row in rows
    ]
