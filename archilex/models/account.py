"""
archilex/models/account.py

Account model: identity, plan tier and the monthly usage counter.
"""

from datetime import datetime
from enum import Enum
from pydantic import BaseModel, ConfigDict


class Profession(str, Enum):
    ARCHITECT = "architect"
    CIVIL_ENGINEER = "civil_engineer"
    MECHANICAL_ENGINEER = "mechanical_engineer"
    ELECTRICAL_ENGINEER = "electrical_engineer"
    OTHER = "other"


class Account(BaseModel):
    """
    Account row as read from the database.

    plan is kept as a plain string: a row may carry a tier that is no longer
    (or never was) in the registry, and reads must fail safe on it rather
    than refuse to load the account.

    usage_count counts uses in the calendar month of period_anchor; it is
    stale (effectively 0) once the current month differs.
    """
    model_config = ConfigDict(frozen=True)

    account_id: str
    email: str
    full_name: str
    profession: str = Profession.ARCHITECT.value
    role: str = "user"
    plan: str = "free"
    usage_count: int = 0
    period_anchor: datetime
    created_at: datetime
