from __future__ import annotations

import logging
from datetime import datetime, timezone

from .constants import FREE_QUESTION_LIMIT
from .models import GateDecision, SubscriptionSnapshot, UsageIdentity

logger = logging.getLogger(__name__)


def is_effectively_active(snapshot: SubscriptionSnapshot | None, now: datetime | None = None) -> bool:
    """Status must be ``active`` and the paid period must not have ended yet."""
    if snapshot is None or snapshot.status != "active":
        return False

    now = now or datetime.now(timezone.utc)
    period_end = snapshot.current_period_end
    if period_end.tzinfo is None:
        period_end = period_end.replace(tzinfo=timezone.utc)
    return period_end > now


def days_until_expiry(snapshot: SubscriptionSnapshot, now: datetime | None = None) -> int:
    now = now or datetime.now(timezone.utc)
    period_end = snapshot.current_period_end
    if period_end.tzinfo is None:
        period_end = period_end.replace(tzinfo=timezone.utc)
    seconds = (period_end - now).total_seconds()
    return max(0, -int(-seconds // 86400))


def is_expiring_soon(snapshot: SubscriptionSnapshot, now: datetime | None = None) -> bool:
    return (
        is_effectively_active(snapshot, now)
        and not snapshot.auto_renew
        and days_until_expiry(snapshot, now) <= 7
    )


class UsageGate:
    """Decides whether a new question may proceed.

    The gate only reads. Recording the accepted free question is the caller's
    job, and two concurrent free questions near the ceiling can both pass before
    either record is written, overshooting the limit by one.
    """

    def __init__(self, free_limit: int = FREE_QUESTION_LIMIT) -> None:
        self.free_limit = free_limit

    def free_remaining(self, historical_free_count: int) -> int:
        return max(0, self.free_limit - historical_free_count)

    def check(
        self,
        identity: UsageIdentity,
        snapshot: SubscriptionSnapshot | None,
        historical_free_count: int,
        now: datetime | None = None,
    ) -> GateDecision:
        subscribed = is_effectively_active(snapshot, now)
        allowed = subscribed or historical_free_count < self.free_limit
        decision = GateDecision(
            allowed=allowed,
            free_remaining=self.free_remaining(historical_free_count),
            subscribed=subscribed,
        )

        if not allowed:
            logger.info("Question blocked for %s: free questions exhausted", identity.key())
        return decision
