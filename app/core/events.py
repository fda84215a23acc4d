"""
Application lifecycle events
Handles startup and shutdown tasks
"""

from fastapi import FastAPI
import logging
from contextlib import asynccontextmanager

from .database import init_db, close_db
from .monitoring import setup_logging
from .config import settings

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager
    Handles startup and shutdown events
    """
    # Startup
    try:
        setup_logging()
        logger.info(f"Starting {settings.APP_NAME}...")

        # Tables are created by the test fixtures when running under pytest
        if not settings.is_test:
            await init_db()
            logger.info("Database initialized")

        if not settings.STRIPE_WEBHOOK_SECRET:
            logger.warning("STRIPE_WEBHOOK_SECRET is not set; webhook deliveries will be rejected")

        logger.info(f"{settings.APP_NAME} started successfully")

        yield

    finally:
        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await close_db()
        logger.info("Shutdown complete")
