"""
Billing provider protocol.

Defines the interface for billing providers (Stripe, etc.).
Plan changes driven by payments go through the plan service; providers
only create checkout sessions and verify/parse webhooks.
"""
from typing import Protocol, Dict, Any, Optional
from dataclasses import dataclass, field


@dataclass
class BillingWebhookResult:
    """Result of verifying and parsing a billing webhook."""
    event_id: str
    event_type: str
    account_id: Optional[str]
    tier: Optional[str]
    subscription_id: Optional[str] = None
    status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class BillingProvider(Protocol):
    """
    Protocol for billing providers.

    Implementations must handle:
    - Checkout session creation for a paid tier
    - Webhook signature verification and parsing
    """

    def create_checkout_session(
        self,
        account_id: str,
        email: str,
        tier: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
    ) -> str:
        """
        Create a subscription checkout session.

        Args:
            account_id: Internal account ID (echoed back in webhook metadata)
            email: Prefilled customer e-mail
            tier: Plan tier being purchased
            price_id: Provider price ID
            success_url: URL to redirect on success
            cancel_url: URL to redirect on cancellation

        Returns:
            Checkout session URL

        Raises:
            BillingProviderError: If session creation fails
        """
        ...

    def handle_webhook(self, headers: Dict[str, str], body: bytes) -> BillingWebhookResult:
        """
        Verify webhook signature and parse event.

        Raises:
            BillingWebhookError: If signature invalid or parsing fails
        """
        ...


class BillingProviderError(Exception):
    """Base exception for billing provider errors."""
    pass


class BillingWebhookError(BillingProviderError):
    """Exception for webhook processing errors."""
    pass
