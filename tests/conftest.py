"""
Shared fixtures: configs, a fake adapter and a wired FastAPI app.

No test talks to a live Supabase, MongoDB or Stripe.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bothive.core.config import BillingConfig, TokenConfig
from bothive.core.context import AppContext
from bothive.core.security import TokenService
from bothive.db.adapter import DatabaseAdapter
from bothive.db.models import Profile, Subscription
from bothive.db.result import ok
from bothive.main import create_app
from bothive.services.retry import RetryPolicy
from bothive.services.webhook_reconciler import WebhookReconciler

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_profile(**overrides) -> Profile:
    values = {
        "id": "user_1",
        "full_name": "Ada Builder",
        "role": "builder",
        "email": "ada@example.com",
        "stripe_customer_id": "cus_1",
        "created_at": NOW,
        "updated_at": NOW,
    }
    values.update(overrides)
    return Profile(**values)


class FakeAdapter(DatabaseAdapter):
    """Adapter whose repositories are AsyncMocks; subscriptions upsert into a dict."""

    name = "fake"

    def __init__(self):
        self.auth = AsyncMock()
        self.profiles = AsyncMock()
        self.subscriptions = AsyncMock()
        self.agents = AsyncMock()
        self.projects = AsyncMock()
        self.messages = AsyncMock()
        self.reviews = AsyncMock()
        self.rows: dict[str, Subscription] = {}
        self.connected = True

        self.profiles.get_by_stripe_customer_id.return_value = ok(make_profile())
        self.profiles.get_by_id.return_value = ok(make_profile())
        self.subscriptions.upsert.side_effect = self._upsert

    async def _upsert(self, record):
        existing = self.rows.get(record.stripe_subscription_id)
        row_id = existing.id if existing else f"row_{len(self.rows) + 1}"
        saved = Subscription(id=row_id, **record.model_dump())
        self.rows[record.stripe_subscription_id] = saved
        return ok(saved)

    async def initialize(self):
        pass

    async def close(self):
        pass

    async def ping(self):
        return self.connected


@pytest.fixture
def token_config():
    return TokenConfig(secret="test-access-secret", refresh_secret="test-refresh-secret")


@pytest.fixture
def tokens(token_config):
    return TokenService(token_config)


@pytest.fixture
def billing():
    return BillingConfig(
        secret_key="sk_test_123",
        webhook_secret="whsec_test_123",
        basic_price_id="price_basic",
        pro_price_id="price_pro",
        enterprise_price_id="price_enterprise",
    )


@pytest.fixture
def fake_db():
    return FakeAdapter()


@pytest.fixture
def sleeps():
    """Records backoff delays instead of sleeping."""
    return []


@pytest.fixture
def reconciler(fake_db, billing, sleeps):
    async def fake_sleep(seconds):
        sleeps.append(seconds)

    return WebhookReconciler(fake_db, billing, RetryPolicy(max_attempts=3, base_delay=1.0, multiplier=2), sleep=fake_sleep)


@pytest.fixture
def context(fake_db, tokens, reconciler, billing):
    return AppContext(db=fake_db, tokens=tokens, reconciler=reconciler, billing=billing)


@pytest.fixture
def client(context):
    """TestClient without lifespan; the context is injected directly."""
    return TestClient(create_app(context))
