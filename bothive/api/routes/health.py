"""
Liveness and store connectivity check.
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from bothive.core.context import AppContext, get_context

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(context: AppContext = Depends(get_context)):
    """
    Report the configured provider and whether it answers a ping.

    Always 200; `status` is "degraded" when the store does not answer.
    """
    connected = await context.db.ping()
    return {
        "status": "healthy" if connected else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": {
            "provider": context.db.name,
            "connected": connected,
        },
        "webhooks": "configured" if context.billing.is_configured else "disabled",
        "version": "1.0.0",
    }
