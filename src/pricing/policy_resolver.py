from typing import Iterable, List, Optional
from datetime import datetime

from src.pricing.schemas import (
    PolicyRule, PolicyResolution, PolicyCategory, PolicyCondition, money
)

def hours_until(departure_at: datetime, now: datetime) -> float:
    """Hours remaining until departure; negative once departure has passed"""
    return (departure_at - now).total_seconds() / 3600

def _matches(policy: PolicyRule, hours_remaining: float) -> bool:
    condition = policy.condition or PolicyCondition.LESS_THAN
    if condition == PolicyCondition.GREATER_THAN:
        return hours_remaining >= policy.hours_trigger
    return hours_remaining < policy.hours_trigger

def _resolution(policy: Optional[PolicyRule]) -> PolicyResolution:
    if policy is None:
        return PolicyResolution()
    return PolicyResolution(policy_id=policy.id, policy_name=policy.name, fee=money(policy.fee_amount))

def resolve_policy(
    policies: Iterable[PolicyRule],
    category: PolicyCategory,
    hours_remaining: float
) -> PolicyResolution:
    """
    Pick the single fee rule that applies to an event.

    Rules are scanned in ascending trigger order, untriggered rules last.
    A LESS_THAN match ends the scan, so the tightest window wins. GREATER_THAN
    matches keep overwriting each other, so the largest trigger still satisfied
    wins. An untriggered rule is the fallback when nothing else matched.
    """
    candidates: List[PolicyRule] = [p for p in policies if p.category == category]
    ordered = sorted(
        candidates,
        key=lambda p: (p.hours_trigger is None, p.hours_trigger if p.hours_trigger is not None else 0)
    )

    chosen = None
    for policy in ordered:
        if policy.hours_trigger is None:
            continue
        if not _matches(policy, hours_remaining):
            continue
        chosen = policy
        if (policy.condition or PolicyCondition.LESS_THAN) == PolicyCondition.LESS_THAN:
            break

    if chosen is None:
        chosen = next((p for p in ordered if p.hours_trigger is None), None)

    return _resolution(chosen)

def resolve_no_show(policies: Iterable[PolicyRule]) -> PolicyResolution:
    """Highest active NO_SHOW fee"""
    no_show = [p for p in policies if p.category == PolicyCategory.NO_SHOW]
    if not no_show:
        return PolicyResolution()
    return _resolution(max(no_show, key=lambda p: money(p.fee_amount)))
