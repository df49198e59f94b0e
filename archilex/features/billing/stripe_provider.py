"""
Stripe billing provider implementation.

Implements BillingProvider using the Stripe API. The account id and tier
travel in checkout and subscription metadata so webhooks can be mapped
back without a customer table.
"""
import json
from typing import Dict, Any, Optional

import stripe

from archilex.core.config import settings
from archilex.features.billing.provider import (
    BillingProviderError,
    BillingWebhookError,
    BillingWebhookResult,
)


class StripeProvider:
    """Stripe implementation of BillingProvider protocol."""

    def __init__(self, secret_key: Optional[str] = None, webhook_secret: Optional[str] = None):
        self.secret_key = secret_key or settings.STRIPE_SECRET_KEY
        self.webhook_secret = webhook_secret or settings.STRIPE_WEBHOOK_SECRET

        if not self.secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")

        stripe.api_key = self.secret_key

    def create_checkout_session(
        self,
        account_id: str,
        email: str,
        tier: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """Create Stripe checkout session."""
        metadata = {"account_id": account_id, "plan": tier}
        try:
            session = stripe.checkout.Session.create(
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=email,
                client_reference_id=account_id,
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
            return session.url
        except stripe.StripeError as e:
            raise BillingProviderError(f"Stripe checkout session creation failed: {e}")

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """Verify Stripe webhook signature and parse event."""
        if not self.webhook_secret:
            raise BillingWebhookError("STRIPE_WEBHOOK_SECRET not configured")

        sig_header = headers.get("stripe-signature") or headers.get("Stripe-Signature")
        if not sig_header:
            raise BillingWebhookError("Missing stripe-signature header")

        try:
            stripe.Webhook.construct_event(body, sig_header, self.webhook_secret)
        except ValueError as e:
            raise BillingWebhookError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise BillingWebhookError(f"Invalid signature: {e}")

        # Signature verified; parse the raw payload as plain JSON
        return parse_event(json.loads(body))


def parse_event(event: Dict[str, Any]) -> BillingWebhookResult:
    """Normalize a Stripe event dict into a BillingWebhookResult."""
    event_type = event["type"]
    data = event.get("data", {}).get("object", {}) or {}
    metadata = data.get("metadata") or {}

    account_id = metadata.get("account_id")
    subscription_id = None
    status = None

    if event_type == "checkout.session.completed":
        account_id = account_id or data.get("client_reference_id")
        subscription_id = data.get("subscription")
        status = data.get("payment_status")
    elif event_type.startswith("customer.subscription."):
        subscription_id = data.get("id")
        status = data.get("status")

    return BillingWebhookResult(
        event_id=event["id"],
        event_type=event_type,
        account_id=account_id,
        tier=metadata.get("plan"),
        subscription_id=subscription_id,
        status=status,
        metadata=dict(metadata),
    )
