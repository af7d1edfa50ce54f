"""
Stripe subscription webhook reconciliation.

Converges the local subscription row to Stripe's view of it. Deliveries are
at-least-once and may arrive out of order, so every relevant event ends in
an upsert keyed on the Stripe subscription id: replaying an event is a no-op
and the last write wins.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import stripe

from bothive.core.config import BillingConfig
from bothive.core.errors import (
    PersistenceError,
    SignatureError,
    UserResolutionError,
    ValidationError,
)
from bothive.db.adapter import DatabaseAdapter
from bothive.db.models import SUBSCRIPTION_TIERS, SubscriptionBase, normalize_status
from bothive.db.result import DatabaseResult
from bothive.services.retry import RetryPolicy, execute_with_retry

logger = logging.getLogger(__name__)

RELEVANT_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})
DELETED_EVENT = "customer.subscription.deleted"

REQUIRED_FIELDS = (
    "stripe_subscription_id",
    "user_id",
    "status",
    "stripe_customer_id",
    "current_period_end",
)

USER_NOT_FOUND = "User not found for subscription"
HANDLER_FAILED = "Webhook handler failed"


@dataclass
class WebhookOutcome:
    status_code: int
    body: dict[str, Any] = field(default_factory=lambda: {"received": True})


def _field(obj: Any, key: str) -> Any:
    """Read a key from a StripeObject or plain dict; missing keys are None."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, TypeError, IndexError):
        return None


def _id_of(value: Any) -> Optional[str]:
    # Expanded objects carry their id; unexpanded references are the id
    if value is None or isinstance(value, str):
        return value
    return _field(value, "id")


def from_unix(seconds: Any, field_name: str = "timestamp") -> Optional[datetime]:
    """
    Stripe timestamps are unix seconds; domain timestamps are aware UTC.

    Raises:
        ValidationError: If `seconds` is not an integral unix timestamp
    """
    if seconds is None:
        return None
    if isinstance(seconds, bool):
        raise ValidationError(invalid_fields=[field_name])
    try:
        return datetime.fromtimestamp(int(seconds), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError):
        raise ValidationError(invalid_fields=[field_name])


def build_price_mapping(billing: BillingConfig) -> dict[str, str]:
    """Map configured Stripe price ids to tiers, skipping unset ones."""
    price_to_tier: dict[str, str] = {}
    for tier, price_id in (
        ("basic", billing.basic_price_id),
        ("pro", billing.pro_price_id),
        ("enterprise", billing.enterprise_price_id),
    ):
        if price_id:
            price_to_tier[price_id] = tier
    return price_to_tier


class WebhookReconciler:
    """
    Verify, filter, resolve, validate and upsert one Stripe delivery.

    `handle` never raises for per-delivery problems; it maps each failure
    stage to the HTTP outcome Stripe should see.
    """

    def __init__(
        self,
        db: Optional[DatabaseAdapter],
        billing: BillingConfig,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.db = db
        self.billing = billing
        self.retry_policy = retry_policy or RetryPolicy(
            max_attempts=billing.max_attempts,
            base_delay=billing.retry_base_delay,
        )
        self.sleep = sleep
        self.price_to_tier = build_price_mapping(billing)
        if billing.secret_key:
            stripe.api_key = billing.secret_key

    async def handle(self, payload: bytes, signature: Optional[str]) -> WebhookOutcome:
        if not self.billing.is_configured:
            logger.error("Stripe not configured")
            return WebhookOutcome(503, {"message": "Stripe not configured"})

        try:
            event = self.verify(payload, signature)
        except SignatureError as e:
            return WebhookOutcome(400, {"message": str(e)})

        event_type = _field(event, "type")
        if event_type not in RELEVANT_EVENTS:
            logger.info(f"Ignoring Stripe event: type={event_type}, id={_field(event, 'id')}")
            return WebhookOutcome(200)

        if self.db is None:
            logger.error("Database not configured")
            return WebhookOutcome(503, {"message": "Database not configured"})

        subscription = _field(_field(event, "data"), "object")
        try:
            user_id = await self.resolve_user(subscription, event_type)
            record = self.build_subscription(subscription, user_id, event_type)
            await self.persist(record, event_type)
        except UserResolutionError:
            return WebhookOutcome(404, {"message": USER_NOT_FOUND})
        except ValidationError as e:
            logger.error(
                f"{HANDLER_FAILED}: error={e}, "
                f"subscription_id={_field(subscription, 'id')}, event_type={event_type}"
            )
            return WebhookOutcome(422, {"message": HANDLER_FAILED})
        except PersistenceError:
            return WebhookOutcome(500, {"message": HANDLER_FAILED})

        return WebhookOutcome(200)

    def verify(self, payload: bytes, signature: Optional[str]) -> Any:
        """Check the Stripe-Signature header against the raw body."""
        try:
            if not signature:
                raise ValueError("No Stripe-Signature header provided")
            event = stripe.Webhook.construct_event(payload, signature, self.billing.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            # Never log the header or body themselves
            logger.error(
                f"Stripe webhook signature verification failed: error={e}, "
                f"has_signature={bool(signature)}"
            )
            raise SignatureError(str(e)) from e
        logger.info(f"Verified webhook event: {_field(event, 'type')}, id={_field(event, 'id')}")
        return event

    async def resolve_user(self, subscription: Any, event_type: str) -> str:
        customer_id = _id_of(_field(subscription, "customer"))
        profile = None
        if customer_id:
            result = await self.db.profiles.get_by_stripe_customer_id(customer_id)
            if result.error is not None:
                logger.error(
                    f"Failed to find user for customer ID: stripe_customer_id={customer_id}, "
                    f"error={result.error.message}"
                )
            profile = result.data

        if profile is None:
            logger.error(
                f"No user found for Stripe customer: stripe_customer_id={customer_id}, "
                f"subscription_id={_field(subscription, 'id')}, event_type={event_type}"
            )
            raise UserResolutionError(USER_NOT_FOUND)
        return profile.id

    def resolve_tier(self, subscription: Any) -> str:
        tier = _field(_field(subscription, "metadata"), "tier")
        if tier in SUBSCRIPTION_TIERS:
            return tier
        items = _field(_field(subscription, "items"), "data") or []
        price_id = _id_of(_field(items[0], "price")) if items else None
        return self.price_to_tier.get(price_id, "free")

    def build_subscription(self, subscription: Any, user_id: str, event_type: str) -> SubscriptionBase:
        current_period_end = _field(subscription, "current_period_end")
        if current_period_end is None:
            # Newer API versions report the period on the subscription item
            items = _field(_field(subscription, "items"), "data") or []
            current_period_end = _field(items[0], "current_period_end") if items else None

        status = _field(subscription, "status")
        values = {
            "stripe_subscription_id": _field(subscription, "id"),
            "user_id": user_id,
            "status": status,
            "stripe_customer_id": _id_of(_field(subscription, "customer")),
            "current_period_end": current_period_end,
        }
        missing = [name for name in REQUIRED_FIELDS if not values[name]]
        if missing:
            raise ValidationError(missing)

        timestamps: dict[str, Optional[datetime]] = {}
        invalid = []
        for name, raw in (("current_period_end", current_period_end), ("trial_end", _field(subscription, "trial_end"))):
            try:
                timestamps[name] = from_unix(raw, name)
            except ValidationError:
                invalid.append(name)
        if invalid:
            raise ValidationError(invalid_fields=invalid)

        return SubscriptionBase(
            user_id=user_id,
            tier=self.resolve_tier(subscription),
            status="canceled" if event_type == DELETED_EVENT else normalize_status(status),
            current_period_end=timestamps["current_period_end"],
            cancel_at_period_end=bool(_field(subscription, "cancel_at_period_end")),
            trial_end=timestamps["trial_end"],
            stripe_customer_id=values["stripe_customer_id"],
            stripe_subscription_id=values["stripe_subscription_id"],
        )

    async def persist(self, record: SubscriptionBase, event_type: str) -> None:
        max_attempts = self.retry_policy.max_attempts

        def warn(attempt: int, result: Any) -> None:
            error = result.error if isinstance(result, DatabaseResult) else result
            logger.warning(
                f"Subscription upsert failed, attempt {attempt}/{max_attempts}: "
                f"subscription_id={record.stripe_subscription_id}, error={getattr(error, 'message', error)}"
            )

        result = await execute_with_retry(
            lambda: self.db.subscriptions.upsert(record),
            self.retry_policy,
            should_retry=lambda r: r.error is not None,
            on_failed_attempt=warn,
            sleep=self.sleep,
        )

        if result.error is not None:
            error = result.error
            logger.error(
                f"Failed to upsert subscription: error={error.message}, code={error.code}, "
                f"details={error.details}, hint={error.hint}, "
                f"subscription_id={record.stripe_subscription_id}, user_id={record.user_id}"
            )
            raise PersistenceError("Failed to upsert subscription", cause=error)

        logger.info(
            f"Successfully processed subscription: subscription_id={record.stripe_subscription_id}, "
            f"user_id={record.user_id}, status={record.status}, tier={record.tier}, event_type={event_type}"
        )
