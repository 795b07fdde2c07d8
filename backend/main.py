"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import fasten_webhook, health_connections
from config import settings
from database import Base, get_engine
from integrations.fasten_client import FastenCredentials
from logging_config import setup_logging
from services.webhook_service import WebhookAuthConfig

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and report the Fasten configuration on startup."""
    try:
        Base.metadata.create_all(bind=get_engine())
    except Exception:
        logger.warning("Database table creation failed on startup", exc_info=True)

    if FastenCredentials.from_settings().basic_auth_header() is None:
        logger.warning(
            "Fasten Connect not configured (FASTEN_PUBLIC_ID, FASTEN_PRIVATE_KEY); "
            "health connections will not request exports"
        )

    auth = WebhookAuthConfig.from_settings()
    if not auth.secret:
        if auth.allow_unsigned:
            logger.warning(
                "FASTEN_WEBHOOK_SECRET not set and FASTEN_ALLOW_UNSIGNED_WEBHOOKS=true: "
                "accepting unsigned webhooks (ENVIRONMENT=%s)",
                settings.ENVIRONMENT,
            )
        else:
            logger.warning("FASTEN_WEBHOOK_SECRET not set: all Fasten webhooks will be rejected")
    yield


app = FastAPI(
    title="ClearCare Health Connections",
    description="Patient health-record connections and EHI export ingestion",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers ("me" routes first so "me" is never taken as a patient id)
app.include_router(health_connections.me_router)
app.include_router(health_connections.router)
app.include_router(fasten_webhook.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
