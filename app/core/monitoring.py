# Prometheus metrics, logging setup and the health probe

import logging
import logging.handlers
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List

from fastapi import FastAPI, Request, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

request_count = Counter("http_requests_total", "Total HTTP requests", ["method", "endpoint", "status"])
request_duration = Histogram("http_request_duration_seconds", "HTTP request duration", ["method", "endpoint"])

# outcome: processed, failed, unhandled or malformed
webhook_events = Counter("stripe_webhook_events_total", "Stripe webhook events", ["event_type", "outcome"])
webhook_duration = Histogram("stripe_webhook_duration_seconds", "Stripe webhook handler duration", ["event_type"])

payout_requests = Counter("payout_requests_total", "Manual payout requests", ["outcome"])
coupon_validations = Counter("coupon_validations_total", "Coupon validations", ["result"])


def _log_handlers(formatter: logging.Formatter) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if settings.LOG_FILE:
        os.makedirs(os.path.dirname(settings.LOG_FILE) or ".", exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            settings.LOG_FILE,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
        ))
    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging():
    """Root logger to console, plus a rotating file when LOG_FILE is set"""
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper()),
        handlers=_log_handlers(logging.Formatter(LOG_FORMAT)),
    )

    if settings.ENVIRONMENT == "production":
        for noisy in ("uvicorn.access", "sqlalchemy.engine", "stripe"):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def setup_monitoring_middleware(app: FastAPI):

    @app.middleware("http")
    async def monitor_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        # Route template, not the raw path, keeps vendor ids out of the labels
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        request_count.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        request_duration.labels(method=request.method, endpoint=endpoint).observe(elapsed)

        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        return response


async def get_health_status(db_session) -> Dict[str, Any]:
    """Service status with a database round trip"""
    health: Dict[str, Any] = {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {},
    }

    started = time.perf_counter()
    try:
        await db_session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        health["services"]["database"] = {"status": "unhealthy", "error": str(e)}
        health["status"] = "unhealthy"
    else:
        health["services"]["database"] = {
            "status": "healthy",
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        }

    return health


def metrics_response() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
