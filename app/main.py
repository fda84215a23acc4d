"""ASGI entry point for the coupon, reconciliation and payout service"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from app.core.config import settings
from app.core.events import lifespan
from app.core.exceptions import VendoraException, vendora_exception_handler
from app.core.monitoring import setup_monitoring_middleware
from app.middleware.rate_limit import limiter, custom_rate_limit_handler
from app.api import api_router
from app.api.health import router as health_router


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        description="Coupons, Stripe reconciliation and vendor payouts for the Vendora marketplace",
        version=settings.APP_VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
        lifespan=lifespan,
    )

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, custom_rate_limit_handler)
    app.add_exception_handler(VendoraException, vendora_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["*"],
    )
    setup_monitoring_middleware(app)

    app.include_router(api_router, prefix="/api/v1")
    # Health checks and the Prometheus scrape stay outside the versioned API
    app.include_router(health_router)

    @app.get("/", include_in_schema=False)
    async def root():
        return {"app": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/api/docs"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS,
    )
