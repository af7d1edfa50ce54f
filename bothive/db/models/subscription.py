from datetime import datetime
from typing import Literal, Optional, get_args

from bothive.db.models.base import DomainModel

SubscriptionTier = Literal["free", "basic", "pro", "enterprise"]
SubscriptionStatus = Literal["active", "canceled", "past_due", "trialing"]

SUBSCRIPTION_TIERS: tuple[str, ...] = get_args(SubscriptionTier)
SUBSCRIPTION_STATUSES: tuple[str, ...] = get_args(SubscriptionStatus)


class SubscriptionBase(DomainModel):
    user_id: str
    tier: SubscriptionTier = "free"
    status: SubscriptionStatus = "active"
    current_period_end: datetime
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    # Natural idempotency key for webhook reconciliation
    stripe_subscription_id: Optional[str] = None


class Subscription(SubscriptionBase):
    id: str


# Stripe statuses outside the domain enum, folded onto the closest state
STRIPE_STATUS_ALIASES = {
    "unpaid": "past_due",
    "incomplete": "past_due",
    "incomplete_expired": "canceled",
    "paused": "canceled",
}


def normalize_tier(value: Optional[str]) -> str:
    return value if value in SUBSCRIPTION_TIERS else "free"


def normalize_status(value: Optional[str]) -> str:
    if value in SUBSCRIPTION_STATUSES:
        return value
    return STRIPE_STATUS_ALIASES.get(value or "", "active")
