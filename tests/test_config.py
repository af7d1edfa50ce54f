"""
Tests for configuration validation and provider selection.
"""
import pytest

from bothive.core import config
from bothive.core.config import BillingConfig, DatabaseConfig, TokenConfig
from bothive.core.errors import ConfigurationError
from bothive.db.mongodb_provider import MongoDBAdapter
from bothive.db.session import create_adapter
from bothive.db.supabase_provider import SupabaseAdapter


def test_unknown_provider_fails_fast():
    with pytest.raises(ConfigurationError, match="Unsupported database provider"):
        DatabaseConfig(provider="cassandra")


def test_missing_provider_fails_fast():
    with pytest.raises(ConfigurationError):
        DatabaseConfig(provider="")


def test_supabase_requires_url_and_service_key():
    with pytest.raises(ConfigurationError, match="SUPABASE_URL"):
        DatabaseConfig(provider="supabase", supabase_url="https://x.supabase.co")


def test_mongodb_requires_uri():
    with pytest.raises(ConfigurationError, match="MONGODB_URI"):
        DatabaseConfig(provider="mongodb")


@pytest.mark.parametrize("alias, expected", [
    ("supabase", "supabase"),
    ("Relational", "supabase"),
    ("mongo", "mongodb"),
    ("document", "mongodb"),
])
def test_provider_aliases(alias, expected):
    config = DatabaseConfig(
        provider=alias,
        supabase_url="https://x.supabase.co",
        supabase_service_role_key="service",
        mongodb_uri="mongodb://localhost:27017",
    )
    assert config.provider == expected


def test_create_adapter_selects_provider():
    supabase = create_adapter(DatabaseConfig(
        provider="supabase",
        supabase_url="https://x.supabase.co",
        supabase_service_role_key="service",
    ))
    assert isinstance(supabase, SupabaseAdapter)
    assert supabase.name == "supabase"

    mongo = create_adapter(DatabaseConfig(provider="document", mongodb_uri="mongodb://localhost:27017"))
    assert isinstance(mongo, MongoDBAdapter)
    assert mongo.name == "mongodb"
    assert mongo.config.mongodb_database == "bothive"


def test_billing_config_is_optional():
    assert not BillingConfig().is_configured
    assert not BillingConfig(secret_key="sk_test").is_configured
    assert BillingConfig(secret_key="sk_test", webhook_secret="whsec").is_configured


def test_numeric_settings_are_parsed_when_loaded(monkeypatch):
    monkeypatch.setattr(config, "WEBHOOK_MAX_ATTEMPTS", "5")
    monkeypatch.setattr(config, "WEBHOOK_RETRY_BASE_DELAY", "0.25")
    billing = BillingConfig.from_env()
    assert billing.max_attempts == 5
    assert billing.retry_base_delay == 0.25


@pytest.mark.parametrize("name, loader", [
    ("WEBHOOK_MAX_ATTEMPTS", BillingConfig.from_env),
    ("WEBHOOK_RETRY_BASE_DELAY", BillingConfig.from_env),
    ("JWT_EXPIRES_MINUTES", TokenConfig.from_env),
    ("JWT_REFRESH_EXPIRES_MINUTES", TokenConfig.from_env),
])
def test_malformed_numeric_setting_is_configuration_error(monkeypatch, name, loader):
    monkeypatch.setattr(config, "JWT_SECRET", "access-secret")
    monkeypatch.setattr(config, "JWT_REFRESH_SECRET", "refresh-secret")
    monkeypatch.setattr(config, name, "ten")
    with pytest.raises(ConfigurationError, match=f"Invalid value for {name}: 'ten'"):
        loader()
