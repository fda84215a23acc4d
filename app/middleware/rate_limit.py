"""Rate limiting middleware using slowapi"""

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

# Custom key function that considers the caller's identity
def get_rate_limit_key(request: Request) -> str:
    """Get rate limit key based on user or IP"""
    # Set by the auth layer in front of this service, when present
    user_id = getattr(request.state, "user_id", None)
    
    if user_id:
        return f"user:{user_id}"
    
    # Fall back to IP address
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        ip = forwarded.split(",")[0].strip()
    else:
        ip = request.client.host if request.client else "unknown"
        
    return f"ip:{ip}"

# Create limiter instance
limiter = Limiter(
    key_func=get_rate_limit_key,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED
)

# Custom rate limit exceeded handler
async def custom_rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    logger.warning(f"Rate limit exceeded for {get_rate_limit_key(request)} on {request.url.path}")
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "RATE_LIMITED",
                "message": f"Too many requests. {exc.detail}"
            }
        }
    )

# Coupon codes are guessable; validation has its own tighter limit
coupon_validation_limit = limiter.limit(settings.COUPON_VALIDATE_RATE_LIMIT)
