"""
archilex/models/usage.py

Usage meter results and summaries.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict


class UsageIncrement(BaseModel):
    """Outcome of one atomic increment."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    previous_count: int
    new_count: int
    rolled_over: bool
    period_anchor: datetime


class UsageStatus(str, Enum):
    OK = "ok"
    APPROACHING_LIMIT = "approaching_limit"
    AT_LIMIT = "at_limit"
    UNLIMITED = "unlimited"


class UsageSummary(BaseModel):
    """Display data for the usage widget."""
    model_config = ConfigDict(frozen=True)

    account_id: str
    plan: str
    plan_name: str
    usage_count: int
    quota: int
    remaining: Optional[int] = None  # None when unlimited
    percentage: float = 0.0
    status: UsageStatus
    period_start: datetime
    period_end: datetime
