"""
archilex/features/entitlements/service.py

Entitlement gate: check-and-consume before every metered tool.

Handles:
- Allow / deny against the account's plan quota
- Atomic consumption (the limit check lives inside the UPDATE)
- 80% / 100% notifications for crossings and denials
- Read-side usage summary for the dashboard widget
- FastAPI dependency for tool endpoints

Denial is a result, not an exception. Only a missing account raises.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple, Union
import logging

from fastapi import Depends

from archilex.core.auth import get_current_account_id
from archilex.core.clock import normalize_now
from archilex.core.errors import QuotaExceededError, ValidationError
from archilex.features.accounts.service import get_account
from archilex.features.notifications.service import ThresholdNotifier, detect_crossings, get_notifier
from archilex.features.plans.registry import is_known_tier, is_unlimited, plan_name, quota_for, warning_threshold
from archilex.features.usage.service import current_period, effective_usage, get_current_usage, increment_usage
from archilex.models.notification import NotificationKind
from archilex.models.usage import UsageStatus, UsageSummary

logger = logging.getLogger("archilex.entitlements")

REASON_QUOTA_EXHAUSTED = "monthly quota exhausted"
REASON_UNKNOWN_PLAN = "unknown plan tier"


class Tool(str, Enum):
    """The seven quota-consuming tools."""
    QA = "qa"
    BLUEPRINT_IMAGE = "blueprint_image"
    BLUEPRINT_PDF = "blueprint_pdf"
    PERMIT_CHECKLIST = "permit_checklist"
    TECHNICAL_REPORT = "technical_report"
    COST_ESTIMATOR = "cost_estimator"
    FEE_CALCULATOR = "fee_calculator"


class GateStatus(str, Enum):
    ALLOWED = "ALLOWED"
    DENIED = "DENIED"


@dataclass(frozen=True)
class GateDecision:
    status: GateStatus
    plan: str
    usage_count: int
    quota: int
    reason: Optional[str] = None
    notifications: Tuple[NotificationKind, ...] = field(default_factory=tuple)

    @property
    def allowed(self) -> bool:
        return self.status == GateStatus.ALLOWED


def _parse_tool(tool: Union[str, Tool]) -> Tool:
    if isinstance(tool, Tool):
        return tool
    try:
        return Tool(tool)
    except ValueError:
        raise ValidationError(f"Unknown tool: {tool!r}", code="unknown_tool") from None


def check_and_consume(
    account_id: str,
    tool: Union[str, Tool],
    *,
    now: Optional[datetime] = None,
    notifier: Optional[ThresholdNotifier] = None,
) -> GateDecision:
    """
    Decide whether the account may use `tool` now, consuming one use if so.

    Args:
        account_id: caller's account
        tool: the metered tool being invoked
        now: clock override
        notifier: threshold notifier (defaults to the configured one)

    Returns:
        GateDecision; DENIED leaves usage_count unchanged

    Raises:
        NotFoundError: unknown account
        ValidationError: unknown tool
    """
    tool = _parse_tool(tool)
    now = normalize_now(now)
    account = get_account(account_id)
    quota = quota_for(account.plan)

    if is_unlimited(quota):
        inc = increment_usage(account_id, tool=tool.value, now=now)
        logger.info(
            "entitlement.allowed",
            extra={"account_id": account_id, "tool": tool.value, "plan": account.plan, "usage_count": inc.new_count, "quota": "unlimited"},
        )
        return GateDecision(GateStatus.ALLOWED, account.plan, inc.new_count, quota)

    notifier = notifier or get_notifier()
    inc = increment_usage(account_id, tool=tool.value, limit=quota, now=now)

    if inc is None:
        current = get_current_usage(account_id, now)
        known = is_known_tier(account.plan)
        reason = REASON_QUOTA_EXHAUSTED if known else REASON_UNKNOWN_PLAN
        logger.warning(
            "entitlement.denied",
            extra={"account_id": account_id, "tool": tool.value, "plan": account.plan, "usage_count": current, "quota": quota, "reason": reason},
        )
        sent: Tuple[NotificationKind, ...] = ()
        if known and quota > 0:
            # Deduplicated per period; covers accounts pushed over quota by a downgrade
            if notifier.notify(account, NotificationKind.USAGE_100, current, quota, now):
                sent = (NotificationKind.USAGE_100,)
        return GateDecision(GateStatus.DENIED, account.plan, current, quota, reason=reason, notifications=sent)

    sent_kinds = []
    for kind in detect_crossings(inc.previous_count, inc.new_count, quota):
        if notifier.notify(account, kind, inc.new_count, quota, now):
            sent_kinds.append(kind)

    logger.info(
        "entitlement.allowed",
        extra={"account_id": account_id, "tool": tool.value, "plan": account.plan, "usage_count": inc.new_count, "quota": quota},
    )
    return GateDecision(GateStatus.ALLOWED, account.plan, inc.new_count, quota, notifications=tuple(sent_kinds))


def usage_status(usage_count: int, quota: int) -> UsageStatus:
    if is_unlimited(quota):
        return UsageStatus.UNLIMITED
    if usage_count >= quota:
        return UsageStatus.AT_LIMIT
    if usage_count >= warning_threshold(quota):
        return UsageStatus.APPROACHING_LIMIT
    return UsageStatus.OK


def get_usage_summary(account_id: str, now: Optional[datetime] = None) -> UsageSummary:
    """Dashboard view of the current period; applies the staleness rule, writes nothing."""
    now = normalize_now(now)
    account = get_account(account_id)
    quota = quota_for(account.plan)
    used = effective_usage(account, now)
    start, end = current_period(now)

    if is_unlimited(quota):
        remaining = None
        percentage = 0.0
    else:
        remaining = max(quota - used, 0)
        percentage = min(100.0, round(used * 100 / quota, 1)) if quota > 0 else 100.0

    return UsageSummary(
        account_id=account_id,
        plan=account.plan,
        plan_name=plan_name(account.plan),
        usage_count=used,
        quota=quota,
        remaining=remaining,
        percentage=percentage,
        status=usage_status(used, quota),
        period_start=start,
        period_end=end,
    )


def ensure_allowed(decision: GateDecision) -> GateDecision:
    """Raise QuotaExceededError (403 quota_exhausted) for a DENIED decision."""
    if not decision.allowed:
        if decision.reason == REASON_QUOTA_EXHAUSTED:
            raise QuotaExceededError(f"Monthly quota exhausted ({decision.usage_count}/{decision.quota})")
        raise QuotaExceededError("Your plan does not allow this operation")
    return decision


def consume_quota(tool: Tool):
    """
    Dependency factory for tool endpoints.

    Usage:
        @router.post("/qa", dependencies=[Depends(consume_quota(Tool.QA))])

    Raises QuotaExceededError (403 quota_exhausted) before the handler runs.
    """
    def dependency(account_id: str = Depends(get_current_account_id)) -> GateDecision:
        return ensure_allowed(check_and_consume(account_id, tool))

    return dependency
