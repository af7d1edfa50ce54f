import os
from dataclasses import dataclass
from typing import Optional

from bothive.core.errors import ConfigurationError

# ✅ Database
DATABASE_PROVIDER = os.getenv("DATABASE_PROVIDER", "supabase")
SUPABASE_URL = os.getenv("SUPABASE_URL")
# Service-role key: server-side only, never sent to a client
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
MONGODB_URI = os.getenv("MONGODB_URI")
MONGODB_DATABASE = os.getenv("MONGODB_DATABASE", "bothive")

# ✅ Security
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
# Numeric settings stay raw strings here and are parsed in from_env()
JWT_EXPIRES_MINUTES = os.getenv("JWT_EXPIRES_MINUTES", str(7 * 24 * 60))
JWT_REFRESH_EXPIRES_MINUTES = os.getenv("JWT_REFRESH_EXPIRES_MINUTES", str(30 * 24 * 60))
# Cookie strategy: Secure flag off only for local http development
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() == "true"

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
STRIPE_BASIC_PRICE_ID = os.getenv("STRIPE_BASIC_PRICE_ID")
STRIPE_PRO_PRICE_ID = os.getenv("STRIPE_PRO_PRICE_ID")
STRIPE_ENTERPRISE_PRICE_ID = os.getenv("STRIPE_ENTERPRISE_PRICE_ID")

# ✅ Webhook reconciliation
WEBHOOK_MAX_ATTEMPTS = os.getenv("WEBHOOK_MAX_ATTEMPTS", "3")
WEBHOOK_RETRY_BASE_DELAY = os.getenv("WEBHOOK_RETRY_BASE_DELAY", "1.0")

# ✅ App
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if origin.strip()
]

SUPABASE = "supabase"
MONGODB = "mongodb"

PROVIDER_ALIASES = {
    "supabase": SUPABASE,
    "relational": SUPABASE,
    "mongodb": MONGODB,
    "mongo": MONGODB,
    "document": MONGODB,
}


def _number(name: str, raw, cast):
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}")


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings for the one provider selected at startup."""
    provider: str
    supabase_url: Optional[str] = None
    supabase_service_role_key: Optional[str] = None
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "bothive"

    def __post_init__(self):
        provider = PROVIDER_ALIASES.get((self.provider or "").strip().lower())
        if provider is None:
            raise ConfigurationError(f"Unsupported database provider: {self.provider}")
        object.__setattr__(self, "provider", provider)

        if provider == SUPABASE:
            if not self.supabase_url or not self.supabase_service_role_key:
                raise ConfigurationError(
                    "Missing Supabase configuration. Please set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
                )
        elif not self.mongodb_uri:
            raise ConfigurationError("Missing MongoDB configuration. Please set MONGODB_URI")

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            provider=DATABASE_PROVIDER,
            supabase_url=SUPABASE_URL,
            supabase_service_role_key=SUPABASE_SERVICE_ROLE_KEY,
            mongodb_uri=MONGODB_URI,
            mongodb_database=MONGODB_DATABASE,
        )


@dataclass(frozen=True)
class TokenConfig:
    """Access and refresh signing settings. The two secrets must differ."""
    secret: Optional[str]
    refresh_secret: Optional[str]
    algorithm: str = "HS256"
    expires_minutes: int = 7 * 24 * 60
    refresh_expires_minutes: int = 30 * 24 * 60

    def __post_init__(self):
        if not self.secret or not self.refresh_secret:
            raise ConfigurationError("Missing JWT configuration. Please set JWT_SECRET and JWT_REFRESH_SECRET")
        if self.secret == self.refresh_secret:
            raise ConfigurationError("JWT_SECRET and JWT_REFRESH_SECRET must be different")
        if self.expires_minutes <= 0 or self.refresh_expires_minutes <= 0:
            raise ConfigurationError("JWT lifetimes must be positive")

    @classmethod
    def from_env(cls) -> "TokenConfig":
        return cls(
            secret=JWT_SECRET,
            refresh_secret=JWT_REFRESH_SECRET,
            algorithm=JWT_ALGORITHM,
            expires_minutes=_number("JWT_EXPIRES_MINUTES", JWT_EXPIRES_MINUTES, int),
            refresh_expires_minutes=_number("JWT_REFRESH_EXPIRES_MINUTES", JWT_REFRESH_EXPIRES_MINUTES, int),
        )


@dataclass(frozen=True)
class BillingConfig:
    """
    Stripe settings for the webhook reconciler.

    Both keys may be absent at startup; the webhook endpoint then answers
    503 instead of the whole app refusing to boot.
    """
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    basic_price_id: Optional[str] = None
    pro_price_id: Optional[str] = None
    enterprise_price_id: Optional[str] = None
    max_attempts: int = 3
    retry_base_delay: float = 1.0

    @property
    def is_configured(self) -> bool:
        return bool(self.secret_key and self.webhook_secret)

    @classmethod
    def from_env(cls) -> "BillingConfig":
        return cls(
            secret_key=STRIPE_SECRET_KEY,
            webhook_secret=STRIPE_WEBHOOK_SECRET,
            basic_price_id=STRIPE_BASIC_PRICE_ID,
            pro_price_id=STRIPE_PRO_PRICE_ID,
            enterprise_price_id=STRIPE_ENTERPRISE_PRICE_ID,
            max_attempts=_number("WEBHOOK_MAX_ATTEMPTS", WEBHOOK_MAX_ATTEMPTS, int),
            retry_base_delay=_number("WEBHOOK_RETRY_BASE_DELAY", WEBHOOK_RETRY_BASE_DELAY, float),
        )
