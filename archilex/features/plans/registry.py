"""
archilex/features/plans/registry.py

Plan registry: the static tier -> monthly quota table.

Quotas are uses per calendar month shared by every metered tool.
UNLIMITED (-1) is a sentinel, never compared as a number.
"""

import logging
from typing import Dict, List, Optional, Union

from archilex.core.config import settings
from archilex.core.errors import ValidationError
from archilex.models.plan import Plan, PlanTier

logger = logging.getLogger("archilex.plans")

UNLIMITED = -1

PLAN_QUOTAS: Dict[PlanTier, int] = {
    PlanTier.FREE: 10,
    PlanTier.STARTER: 50,
    PlanTier.PROFESSIONAL: 200,
    PlanTier.UNLIMITED: UNLIMITED,
}

PLAN_NAMES: Dict[PlanTier, str] = {
    PlanTier.FREE: "Δωρεάν",
    PlanTier.STARTER: "Starter",
    PlanTier.PROFESSIONAL: "Professional",
    PlanTier.UNLIMITED: "Unlimited",
}

# Tiers sold through checkout; the price id comes from settings
PURCHASABLE_TIERS = (PlanTier.STARTER, PlanTier.PROFESSIONAL, PlanTier.UNLIMITED)


class UnknownPlanTierError(ValidationError):
    code = "unknown_plan_tier"


def parse_tier(value: Union[str, PlanTier]) -> PlanTier:
    """
    Strict tier parsing for writes.

    Raises:
        UnknownPlanTierError: value is not a registered tier
    """
    if isinstance(value, PlanTier):
        return value
    try:
        return PlanTier(str(value).strip().lower())
    except ValueError:
        raise UnknownPlanTierError(f"Unknown plan tier: {value!r}") from None


def quota_for(plan: Union[str, PlanTier]) -> int:
    """
    Monthly quota for a tier.

    Total: unknown tiers get 0 (every consumption denied) and a WARNING,
    so a corrupted row can never grant unlimited access.
    """
    try:
        tier = plan if isinstance(plan, PlanTier) else PlanTier(plan)
    except ValueError:
        logger.warning("plan.unknown_tier", extra={"plan": plan})
        return 0
    return PLAN_QUOTAS[tier]


def is_known_tier(plan: Union[str, PlanTier]) -> bool:
    return isinstance(plan, PlanTier) or plan in {t.value for t in PlanTier}


def is_unlimited(quota: int) -> bool:
    return quota == UNLIMITED


def warning_threshold(quota: int) -> int:
    """80% of quota, floored, in integer arithmetic (10 -> 8, 50 -> 40, 200 -> 160)."""
    return quota * 8 // 10


def plan_name(plan: Union[str, PlanTier]) -> str:
    try:
        tier = plan if isinstance(plan, PlanTier) else PlanTier(plan)
    except ValueError:
        return str(plan)
    return PLAN_NAMES[tier]


def stripe_price_id(tier: PlanTier) -> Optional[str]:
    """Configured Stripe price id for a paid tier (None if unsold or unset)."""
    return {
        PlanTier.STARTER: settings.STRIPE_PRICE_ID_STARTER,
        PlanTier.PROFESSIONAL: settings.STRIPE_PRICE_ID_PROFESSIONAL,
        PlanTier.UNLIMITED: settings.STRIPE_PRICE_ID_UNLIMITED,
    }.get(tier)


def list_plans() -> List[Plan]:
    """All tiers in ascending order, for display."""
    return [
        Plan(
            tier=tier,
            name=PLAN_NAMES[tier],
            quota=PLAN_QUOTAS[tier],
            purchasable=tier in PURCHASABLE_TIERS and bool(stripe_price_id(tier)),
            stripe_price_id=stripe_price_id(tier),
        )
        for tier in PlanTier
    ]
