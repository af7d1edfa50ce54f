import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# ✅ Import All API Routes
from bothive.api.routes import auth, billing_webhook, health
from bothive.core.config import CORS_ORIGINS, LOG_LEVEL
from bothive.core.context import AppContext, build_context
from bothive.core.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(LOG_LEVEL)
    # A pre-built context (tests, embedding) wins over the environment
    context: AppContext = getattr(app.state, "context", None) or build_context()
    await context.db.initialize()
    app.state.context = context
    logger.info(f"Bothive API started with provider={context.db.name}")
    try:
        yield
    finally:
        await context.db.close()
        logger.info("Bothive API stopped")


def create_app(context: Optional[AppContext] = None) -> FastAPI:
    # ============================================
    # ✅ FASTAPI APP INIT
    # ============================================
    app = FastAPI(title="Bothive API", lifespan=lifespan)
    if context is not None:
        app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["Authorization", "Content-Type"],
    )

    # ============================================
    # ✅ REGISTER ALL ROUTERS
    # ============================================
    app.include_router(auth.router)
    app.include_router(billing_webhook.router)
    app.include_router(health.router)

    @app.get("/")
    def root():
        return {"status": "Bothive API running"}

    return app


app = create_app()
