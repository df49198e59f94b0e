"""Tests for admin routes and X-Admin-Key guard."""
from datetime import timedelta

import pytest

from archilex.core.clock import utc_now
from archilex.core.config import settings
from archilex.features.entitlements.service import Tool, check_and_consume


def test_admin_key_unconfigured_is_503(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_KEY", None)
    resp = client.get("/api/admin/users", headers={"X-Admin-Key": "anything"})
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "admin_disabled"


@pytest.mark.parametrize("headers", [{}, {"X-Admin-Key": "wrong"}])
def test_admin_key_required(client, admin_key, headers):
    resp = client.get("/api/admin/users", headers=headers)
    assert resp.status_code == 401


def test_list_users_shows_effective_usage(client, admin_key, make_account):
    now = utc_now()
    current = make_account(plan="starter", usage_count=12, period_anchor=now)
    stale = make_account(usage_count=9, period_anchor=now - timedelta(days=400))

    resp = client.get("/api/admin/users", headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 200
    body = resp.json()
    assert body["total"] == 2
    users = {u["account_id"]: u for u in body["users"]}
    assert (users[current.account_id]["usage_count"], users[current.account_id]["quota"]) == (12, 50)
    assert users[stale.account_id]["usage_count"] == 0


def test_set_plan_override(client, admin_key, make_account):
    account = make_account(usage_count=40, period_anchor=utc_now())
    resp = client.patch(
        f"/api/admin/users/{account.account_id}/plan",
        json={"plan": "professional"},
        headers={"X-Admin-Key": admin_key},
    )
    assert resp.status_code == 200
    assert resp.json()["plan"] == "professional"
    assert resp.json()["usage_count"] == 40

    history = client.get(f"/api/admin/users/{account.account_id}/plan-history", headers={"X-Admin-Key": admin_key}).json()
    assert history[0]["source"] == "admin"
    assert history[0]["actor"].startswith("admin:")


def test_set_plan_unknown_tier_is_400(client, admin_key, make_account):
    account = make_account()
    resp = client.patch(
        f"/api/admin/users/{account.account_id}/plan",
        json={"plan": "platinum"},
        headers={"X-Admin-Key": admin_key},
    )
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "unknown_plan_tier"


def test_reset_usage(client, admin_key, make_account):
    account = make_account(usage_count=10, period_anchor=utc_now())
    resp = client.post(f"/api/admin/users/{account.account_id}/usage/reset", headers={"X-Admin-Key": admin_key})
    assert resp.status_code == 200
    assert resp.json()["usage_count"] == 0


def test_stats(client, admin_key, make_account, outbox):
    now = utc_now()
    full = make_account(usage_count=9, period_anchor=now)
    make_account(plan="professional", usage_count=5, period_anchor=now)
    make_account(plan="unlimited", usage_count=0, period_anchor=now)

    check_and_consume(full.account_id, Tool.QA, now=now)

    body = client.get("/api/admin/stats", headers={"X-Admin-Key": admin_key}).json()
    assert body["total_accounts"] == 3
    assert body["accounts_per_plan"] == {"free": 1, "professional": 1, "unlimited": 1}
    assert body["uses_this_period"] == 15
    assert body["uses_per_tool"] == {"qa": 1}
    assert body["accounts_at_limit"] == 1
