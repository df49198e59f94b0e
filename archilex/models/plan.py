"""
archilex/models/plan.py

Plan tiers and their display models.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class PlanTier(str, Enum):
    """Closed set of subscription tiers."""
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    UNLIMITED = "unlimited"


class Plan(BaseModel):
    """
    Plan as shown to clients.

    quota is the number of uses per calendar month; -1 means unlimited.
    """
    model_config = ConfigDict(frozen=True)

    tier: PlanTier
    name: str
    quota: int
    purchasable: bool = False
    stripe_price_id: Optional[str] = None


class PlanChange(BaseModel):
    """Audit record of one plan transition."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    from_plan: str
    to_plan: str
    source: str
    actor: Optional[str] = None
    changed_at: datetime
