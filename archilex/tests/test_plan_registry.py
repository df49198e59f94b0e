"""Tests for the plan registry (tier -> monthly quota)."""
import logging

import pytest

from archilex.features.plans.registry import (
    PLAN_QUOTAS,
    UNLIMITED,
    UnknownPlanTierError,
    is_known_tier,
    is_unlimited,
    list_plans,
    parse_tier,
    quota_for,
    warning_threshold,
)
from archilex.core.config import settings
from archilex.models.plan import PlanTier


def test_quotas_per_tier():
    assert quota_for("free") == 10
    assert quota_for("starter") == 50
    assert quota_for("professional") == 200
    assert quota_for(PlanTier.UNLIMITED) == UNLIMITED
    assert is_unlimited(quota_for("unlimited"))


def test_unknown_tier_fails_safe_with_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="archilex.plans"):
        assert quota_for("enterprise") == 0
    assert any(r.getMessage() == "plan.unknown_tier" for r in caplog.records)
    assert not is_unlimited(quota_for("enterprise"))
    assert not is_known_tier("enterprise")


@pytest.mark.parametrize("quota,expected", [(10, 8), (50, 40), (200, 160), (1, 0), (7, 5)])
def test_warning_threshold_is_floor_of_80_percent(quota, expected):
    assert warning_threshold(quota) == expected


def test_parse_tier_is_strict():
    assert parse_tier(" Professional ") == PlanTier.PROFESSIONAL
    assert parse_tier(PlanTier.FREE) == PlanTier.FREE
    with pytest.raises(UnknownPlanTierError) as exc_info:
        parse_tier("pro")
    assert exc_info.value.status_code == 400
    assert exc_info.value.code == "unknown_plan_tier"


def test_every_tier_has_a_quota():
    assert set(PLAN_QUOTAS) == set(PlanTier)


def test_list_plans_marks_purchasable_only_with_price(monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_PRICE_ID_STARTER", "price_starter")
    monkeypatch.setattr(settings, "STRIPE_PRICE_ID_PROFESSIONAL", None)
    plans = {p.tier: p for p in list_plans()}

    assert [p.tier for p in list_plans()] == list(PlanTier)
    assert plans[PlanTier.STARTER].purchasable is True
    assert plans[PlanTier.STARTER].stripe_price_id == "price_starter"
    assert plans[PlanTier.PROFESSIONAL].purchasable is False
    assert plans[PlanTier.FREE].purchasable is False
    assert plans[PlanTier.UNLIMITED].quota == -1
