"""
Test billing service: checkout and idempotent webhook processing.

The provider is mocked; plan changes go through the real plan service.
"""
import json
from unittest.mock import Mock, patch

import pytest
import stripe
from sqlalchemy import select

from archilex.core.config import settings
from archilex.core.database import get_db_session, billing_events
from archilex.core.errors import ValidationError
from archilex.features.accounts.service import get_account
from archilex.features.billing.provider import BillingWebhookError, BillingWebhookResult
from archilex.features.billing.service import billing_enabled, process_webhook_event, start_checkout
from archilex.features.billing.stripe_provider import StripeProvider, parse_event
from archilex.features.plans.service import get_plan_history
from archilex.tests.mocks import NOW


@pytest.fixture
def stripe_configured(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test123")
    monkeypatch.setattr(settings, "STRIPE_PRICE_ID_STARTER", "price_starter")
    monkeypatch.setattr(settings, "STRIPE_PRICE_ID_PROFESSIONAL", "price_pro")


@pytest.fixture
def mock_provider(stripe_configured):
    with patch("archilex.features.billing.service.get_provider") as mock_get:
        provider = Mock()
        mock_get.return_value = provider
        yield provider


def _result(event_id, event_type, account_id, tier=None):
    return BillingWebhookResult(event_id=event_id, event_type=event_type, account_id=account_id, tier=tier)


def test_billing_disabled_without_secret(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", None)
    assert billing_enabled() is False
    assert start_checkout("anyone", "starter") is None
    with pytest.raises(BillingWebhookError):
        process_webhook_event({}, b"{}")


def test_start_checkout_passes_account_and_price(mock_provider, make_account):
    account = make_account()
    mock_provider.create_checkout_session.return_value = "https://checkout.stripe.com/c/pay/cs_test"

    url = start_checkout(account.account_id, "professional")

    assert url == "https://checkout.stripe.com/c/pay/cs_test"
    kwargs = mock_provider.create_checkout_session.call_args.kwargs
    assert kwargs["account_id"] == account.account_id
    assert kwargs["email"] == account.email
    assert kwargs["tier"] == "professional"
    assert kwargs["price_id"] == "price_pro"
    assert kwargs["success_url"].endswith("/dashboard?status=success&session_id={CHECKOUT_SESSION_ID}")


@pytest.mark.parametrize("tier", ["free", "unlimited"])
def test_checkout_rejects_unsold_or_unpriced_tiers(mock_provider, make_account, monkeypatch, tier):
    monkeypatch.setattr(settings, "STRIPE_PRICE_ID_UNLIMITED", None)
    account = make_account()
    with pytest.raises(ValidationError):
        start_checkout(account.account_id, tier)
    mock_provider.create_checkout_session.assert_not_called()


def test_checkout_completed_upgrades_plan(mock_provider, make_account, outbox):
    account = make_account(plan="free", usage_count=9)
    mock_provider.handle_webhook.return_value = _result("evt_1", "checkout.session.completed", account.account_id, "professional")

    process_webhook_event({"stripe-signature": "sig"}, b'{"id": "evt_1"}', now=NOW)

    updated = get_account(account.account_id)
    assert updated.plan == "professional"
    assert updated.usage_count == 9
    assert get_plan_history(account.account_id)[0].source == "payment"
    assert outbox.subjects == ["Επιτυχής αναβάθμιση πλάνου - ArchiLex"]

    with get_db_session() as session:
        event = session.execute(select(billing_events)).one()
    assert event.stripe_event_id == "evt_1"
    assert event.processed


def test_duplicate_event_is_skipped(mock_provider, make_account, outbox):
    account = make_account()
    mock_provider.handle_webhook.return_value = _result("evt_dup", "checkout.session.completed", account.account_id, "starter")

    process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)
    # Admin moves the account meanwhile; a replayed event must not undo that
    from archilex.features.plans.service import set_plan
    set_plan(account.account_id, "professional", now=NOW)
    process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)

    assert get_account(account.account_id).plan == "professional"
    with get_db_session() as session:
        rows = session.execute(select(billing_events)).all()
    assert len(rows) == 1


def test_subscription_deleted_reverts_to_free(mock_provider, make_account, outbox):
    account = make_account(plan="starter", usage_count=30)
    mock_provider.handle_webhook.return_value = _result("evt_2", "customer.subscription.deleted", account.account_id)

    process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)

    updated = get_account(account.account_id)
    assert updated.plan == "free"
    assert updated.usage_count == 30
    assert outbox.sent == []


def test_failure_is_recorded_and_reraised(mock_provider):
    mock_provider.handle_webhook.return_value = _result("evt_3", "checkout.session.completed", "missing-account", "starter")

    with pytest.raises(Exception):
        process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)

    with get_db_session() as session:
        event = session.execute(select(billing_events)).one()
    assert not event.processed
    assert "not found" in event.error


def test_redelivered_event_is_applied_after_failure(mock_provider, make_account, outbox):
    account = make_account()
    mock_provider.handle_webhook.return_value = _result("evt_5", "checkout.session.completed", account.account_id, "professional")

    with patch("archilex.features.billing.service.set_plan", side_effect=RuntimeError("connection reset")):
        with pytest.raises(RuntimeError):
            process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)
    assert get_account(account.account_id).plan == "free"

    # Stripe redelivers the same event id
    process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)

    assert get_account(account.account_id).plan == "professional"
    with get_db_session() as session:
        rows = session.execute(select(billing_events)).all()
    assert len(rows) == 1
    assert rows[0].processed
    assert rows[0].error is None


def test_unrelated_event_is_marked_processed(mock_provider, make_account):
    account = make_account()
    mock_provider.handle_webhook.return_value = _result("evt_4", "invoice.paid", account.account_id)
    process_webhook_event({"stripe-signature": "sig"}, b"{}", now=NOW)
    assert get_account(account.account_id).plan == "free"


class TestStripeProvider:
    def test_parse_checkout_completed(self):
        result = parse_event({
            "id": "evt_10",
            "type": "checkout.session.completed",
            "data": {"object": {
                "client_reference_id": "acc_1",
                "subscription": "sub_1",
                "payment_status": "paid",
                "metadata": {"plan": "starter"},
            }},
        })
        assert result.account_id == "acc_1"
        assert result.tier == "starter"
        assert result.subscription_id == "sub_1"

    def test_parse_subscription_deleted(self):
        result = parse_event({
            "id": "evt_11",
            "type": "customer.subscription.deleted",
            "data": {"object": {"id": "sub_1", "status": "canceled", "metadata": {"account_id": "acc_1", "plan": "starter"}}},
        })
        assert result.account_id == "acc_1"
        assert result.subscription_id == "sub_1"
        assert result.status == "canceled"

    def test_missing_signature_rejected(self):
        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test123")
        with pytest.raises(BillingWebhookError):
            provider.handle_webhook({}, b"{}")

    def test_bad_signature_rejected(self):
        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test123")
        with pytest.raises(BillingWebhookError):
            provider.handle_webhook({"stripe-signature": "t=1,v1=deadbeef"}, b'{"id": "evt_x"}')

    def test_verified_payload_is_parsed(self):
        provider = StripeProvider(secret_key="sk_test_123", webhook_secret="whsec_test123")
        body = json.dumps({
            "id": "evt_12",
            "type": "checkout.session.completed",
            "data": {"object": {"metadata": {"account_id": "acc_9", "plan": "professional"}}},
        }).encode()
        with patch.object(stripe.Webhook, "construct_event", return_value={}) as construct:
            result = provider.handle_webhook({"stripe-signature": "sig"}, body)
        construct.assert_called_once_with(body, "sig", "whsec_test123")
        assert (result.account_id, result.tier) == ("acc_9", "professional")
