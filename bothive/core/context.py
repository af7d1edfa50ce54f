import logging
from dataclasses import asdict, dataclass
from typing import Optional

from fastapi import HTTPException, Request

from bothive.core.config import BillingConfig, DatabaseConfig, TokenConfig
from bothive.core.logging_config import sanitize_log_data
from bothive.core.security import TokenService
from bothive.db.adapter import DatabaseAdapter
from bothive.db.session import create_adapter
from bothive.services.webhook_reconciler import WebhookReconciler

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide collaborators, built once at startup and read-only after."""
    db: DatabaseAdapter
    tokens: TokenService
    reconciler: WebhookReconciler
    billing: BillingConfig


def build_context(
    db_config: Optional[DatabaseConfig] = None,
    token_config: Optional[TokenConfig] = None,
    billing: Optional[BillingConfig] = None,
) -> AppContext:
    """
    Assemble the context from explicit configs, falling back to the environment.

    Raises:
        ConfigurationError: If the database or JWT settings are unusable
    """
    billing = billing or BillingConfig.from_env()
    db_config = db_config or DatabaseConfig.from_env()
    logger.info(f"Database configuration: {sanitize_log_data(asdict(db_config))}")
    db = create_adapter(db_config)
    tokens = TokenService(token_config or TokenConfig.from_env())
    if not billing.is_configured:
        logger.warning("STRIPE_SECRET_KEY or STRIPE_WEBHOOK_SECRET not configured - webhooks disabled")
    return AppContext(
        db=db,
        tokens=tokens,
        reconciler=WebhookReconciler(db, billing),
        billing=billing,
    )


def get_context(request: Request) -> AppContext:
    """FastAPI dependency returning the context stored on app.state."""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Service not initialized")
    return context
