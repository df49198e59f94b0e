"""Plan catalogue: GET /api/plans."""
from typing import List

from fastapi import APIRouter

from archilex.features.plans.registry import list_plans
from archilex.models.plan import Plan

router = APIRouter(prefix="/plans", tags=["plans"])


@router.get("", response_model=List[Plan])
def get_plans():
    return list_plans()
