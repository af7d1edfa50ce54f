"""
Tests for Stripe webhook reconciliation.
"""
import logging
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import stripe

from bothive.core.config import BillingConfig
from bothive.core.errors import DatabaseError, ValidationError
from bothive.db.result import fail, ok
from bothive.services.webhook_reconciler import WebhookReconciler, from_unix

CONSTRUCT_EVENT = "stripe.Webhook.construct_event"


def subscription_event(event_type="customer.subscription.updated", **overrides):
    obj = {
        "id": "sub_1",
        "customer": "cus_1",
        "status": "active",
        "metadata": {"tier": "pro"},
        "current_period_end": 1700000000,
        "cancel_at_period_end": False,
        "trial_end": None,
        "items": {"data": [{"price": {"id": "price_basic"}}]},
    }
    obj.update(overrides)
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}}


async def deliver(reconciler, event, signature="t=1,v1=abc"):
    with patch(CONSTRUCT_EVENT, return_value=event):
        return await reconciler.handle(b"{}", signature)


@pytest.mark.asyncio
async def test_subscription_updated_is_upserted(reconciler, fake_db):
    """The canonical sub_1/cus_1 delivery lands one row."""
    outcome = await deliver(reconciler, subscription_event())

    assert outcome.status_code == 200
    assert outcome.body == {"received": True}
    row = fake_db.rows["sub_1"]
    assert row.user_id == "user_1"
    assert row.status == "active"
    assert row.tier == "pro"
    assert row.stripe_customer_id == "cus_1"
    assert row.trial_end is None
    assert row.current_period_end.timestamp() * 1000 == 1700000000000
    assert row.current_period_end.tzinfo is not None


@pytest.mark.asyncio
async def test_redelivery_is_idempotent(reconciler, fake_db):
    event = subscription_event()
    first = await deliver(reconciler, event)
    second = await deliver(reconciler, event)

    assert first.status_code == second.status_code == 200
    assert len(fake_db.rows) == 1
    assert fake_db.subscriptions.upsert.await_count == 2


@pytest.mark.asyncio
async def test_last_write_wins(reconciler, fake_db):
    await deliver(reconciler, subscription_event(status="active"))
    await deliver(reconciler, subscription_event(status="past_due", cancel_at_period_end=True))

    row = fake_db.rows["sub_1"]
    assert row.status == "past_due"
    assert row.cancel_at_period_end is True
    assert row.id == "row_1"


@pytest.mark.asyncio
async def test_deleted_event_persists_canceled(reconciler, fake_db):
    outcome = await deliver(reconciler, subscription_event("customer.subscription.deleted", status="active"))
    assert outcome.status_code == 200
    assert fake_db.rows["sub_1"].status == "canceled"


@pytest.mark.asyncio
@pytest.mark.parametrize("stripe_status, expected", [
    ("trialing", "trialing"),
    ("unpaid", "past_due"),
    ("incomplete", "past_due"),
    ("incomplete_expired", "canceled"),
    ("paused", "canceled"),
])
async def test_stripe_statuses_are_folded(reconciler, fake_db, stripe_status, expected):
    await deliver(reconciler, subscription_event(status=stripe_status))
    assert fake_db.rows["sub_1"].status == expected


@pytest.mark.asyncio
async def test_tier_falls_back_to_price_then_free(reconciler, fake_db):
    await deliver(reconciler, subscription_event(metadata={}))
    assert fake_db.rows["sub_1"].tier == "basic"

    await deliver(reconciler, subscription_event(id="sub_2", metadata={"tier": "gold"}, items={"data": []}))
    assert fake_db.rows["sub_2"].tier == "free"


@pytest.mark.asyncio
async def test_trial_end_is_converted(reconciler, fake_db):
    await deliver(reconciler, subscription_event(trial_end=1700086400))
    assert fake_db.rows["sub_1"].trial_end == datetime(2023, 11, 15, 22, 13, 20, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_period_end_read_from_item_when_missing_on_subscription(reconciler, fake_db):
    event = subscription_event(
        current_period_end=None,
        items={"data": [{"price": {"id": "price_pro"}, "current_period_end": 1700000000}]},
    )
    outcome = await deliver(reconciler, event)
    assert outcome.status_code == 200
    assert fake_db.rows["sub_1"].current_period_end == from_unix(1700000000)


@pytest.mark.asyncio
async def test_invalid_signature_returns_400(reconciler, fake_db, caplog):
    error = stripe.SignatureVerificationError("Invalid signature", "t=1,v1=abc")
    with patch(CONSTRUCT_EVENT, side_effect=error), caplog.at_level(logging.ERROR):
        outcome = await reconciler.handle(b'{"id": "evt_1"}', "t=1,v1=abc")

    assert outcome.status_code == 400
    assert outcome.body == {"message": "Invalid signature"}
    assert "Stripe webhook signature verification failed" in caplog.text
    assert "has_signature=True" in caplog.text
    assert "t=1,v1=abc" not in caplog.text
    fake_db.profiles.get_by_stripe_customer_id.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_signature_returns_400(reconciler, caplog):
    with patch(CONSTRUCT_EVENT) as construct, caplog.at_level(logging.ERROR):
        outcome = await reconciler.handle(b"{}", None)

    assert outcome.status_code == 400
    assert "has_signature=False" in caplog.text
    construct.assert_not_called()


@pytest.mark.asyncio
async def test_irrelevant_events_are_acknowledged_without_writes(reconciler, fake_db):
    outcome = await deliver(reconciler, {"id": "evt_2", "type": "invoice.paid", "data": {"object": {}}})
    assert outcome.status_code == 200
    assert outcome.body == {"received": True}
    fake_db.subscriptions.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_unknown_customer_returns_404(reconciler, fake_db, caplog):
    fake_db.profiles.get_by_stripe_customer_id.return_value = ok(None)

    with caplog.at_level(logging.ERROR):
        outcome = await deliver(reconciler, subscription_event("customer.subscription.created"))

    assert outcome.status_code == 404
    assert outcome.body == {"message": "User not found for subscription"}
    assert "No user found for Stripe customer" in caplog.text
    assert "stripe_customer_id=cus_1" in caplog.text
    assert "event_type=customer.subscription.created" in caplog.text
    fake_db.subscriptions.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_customer_lookup_error_returns_404(reconciler, fake_db, caplog):
    fake_db.profiles.get_by_stripe_customer_id.return_value = fail(
        DatabaseError("Connection failed", code="CONNECTION_ERROR")
    )

    with caplog.at_level(logging.ERROR):
        outcome = await deliver(reconciler, subscription_event())

    assert outcome.status_code == 404
    assert "Failed to find user for customer ID" in caplog.text
    assert "error=Connection failed" in caplog.text


@pytest.mark.asyncio
async def test_missing_fields_return_422(reconciler, fake_db, caplog):
    with caplog.at_level(logging.ERROR):
        outcome = await deliver(reconciler, subscription_event(id=None, status=None))

    assert outcome.status_code == 422
    assert outcome.body == {"message": "Webhook handler failed"}
    assert "Validation failed: missing stripe_subscription_id, status" in caplog.text
    fake_db.subscriptions.upsert.assert_not_awaited()


@pytest.mark.asyncio
async def test_malformed_timestamps_return_422(reconciler, fake_db, caplog):
    """Non-numeric timestamps are a data-shape problem, not a server error."""
    with caplog.at_level(logging.ERROR):
        outcome = await deliver(reconciler, subscription_event(current_period_end="not-a-number", trial_end="soon"))

    assert outcome.status_code == 422
    assert outcome.body == {"message": "Webhook handler failed"}
    assert "Validation failed: invalid current_period_end, trial_end" in caplog.text
    fake_db.subscriptions.upsert.assert_not_awaited()


def test_from_unix_rejects_non_integers():
    with pytest.raises(ValidationError, match="invalid trial_end"):
        from_unix("tomorrow", "trial_end")
    with pytest.raises(ValidationError):
        from_unix(True)
    assert from_unix("1700000000") == from_unix(1700000000)


@pytest.mark.asyncio
async def test_persistent_upsert_failure_returns_500(reconciler, fake_db, sleeps, caplog):
    """Exactly three attempts with two backoff sleeps, then 500."""
    fake_db.subscriptions.upsert.side_effect = None
    fake_db.subscriptions.upsert.return_value = fail(DatabaseError(
        "Connection timeout", code="TIMEOUT", details="pool exhausted", hint="retry later",
    ))

    with caplog.at_level(logging.WARNING):
        outcome = await deliver(reconciler, subscription_event())

    assert outcome.status_code == 500
    assert outcome.body == {"message": "Webhook handler failed"}
    assert fake_db.subscriptions.upsert.await_count == 3
    assert sleeps == [1.0, 2.0]

    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 3
    assert "attempt 3/3" in warnings[-1].getMessage()

    assert "Failed to upsert subscription" in caplog.text
    for fragment in ("code=TIMEOUT", "details=pool exhausted", "hint=retry later", "subscription_id=sub_1", "user_id=user_1"):
        assert fragment in caplog.text


@pytest.mark.asyncio
async def test_transient_failure_then_success(reconciler, fake_db, sleeps, caplog):
    saved = []

    async def flaky(record):
        if not saved:
            saved.append("failed")
            return fail(DatabaseError("Temporary error", code="TEMP_ERROR"))
        return await fake_db._upsert(record)

    fake_db.subscriptions.upsert.side_effect = flaky

    with caplog.at_level(logging.INFO):
        outcome = await deliver(reconciler, subscription_event())

    assert outcome.status_code == 200
    assert fake_db.subscriptions.upsert.await_count == 2
    assert sleeps == [1.0]
    assert "Successfully processed subscription" in caplog.text


@pytest.mark.asyncio
async def test_unconfigured_stripe_returns_503(fake_db):
    reconciler = WebhookReconciler(fake_db, BillingConfig())
    with patch(CONSTRUCT_EVENT) as construct:
        outcome = await reconciler.handle(b"{}", "t=1,v1=abc")
    assert outcome.status_code == 503
    assert outcome.body == {"message": "Stripe not configured"}
    construct.assert_not_called()


@pytest.mark.asyncio
async def test_missing_store_returns_503(billing):
    reconciler = WebhookReconciler(None, billing)
    outcome = await deliver(reconciler, subscription_event())
    assert outcome.status_code == 503
    assert outcome.body == {"message": "Database not configured"}
