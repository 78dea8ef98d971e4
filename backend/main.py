"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import open_banking
from config import settings
from database import init_db
from logging_config import setup_logging
from services.authorization_state_store import AuthorizationStateStore

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and the process-wide authorization state store."""
    try:
        init_db()
    except Exception:
        logger.warning("Database initialization failed on startup", exc_info=True)

    app.state.authorization_state_store = AuthorizationStateStore(
        ttl=timedelta(minutes=settings.OPEN_BANKING_STATE_TTL_MINUTES)
    )
    logger.info(
        "Open banking service started (aggregator %s, %s)",
        settings.OPEN_BANKING_PROVIDER,
        settings.ENVIRONMENT,
    )
    yield


app = FastAPI(
    title="Open Banking Link",
    description="Link bank accounts through an Open Banking aggregator",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(open_banking.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
