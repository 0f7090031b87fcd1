"""Rate limiting configuration using SlowAPI."""

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.responses import JSONResponse

from app.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)

settings = get_settings()

# Create limiter with IP-based key function
limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

# Applied to endpoints that mutate job state
MUTATION_LIMIT = settings.mutation_rate_limit


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Custom handler for rate limit exceeded errors."""
    logger.bind(path=request.url.path, limit=str(exc.detail)).warning("rate_limit_exceeded")
    return JSONResponse(
        status_code=429,
        content={"detail": "Too many requests. Please try again later.", "error": "Rate Limited"},
    )
