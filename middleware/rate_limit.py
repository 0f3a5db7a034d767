# middleware/rate_limit.py
"""
Rate limiting configuration using slowapi.

Usage in route files:
    from middleware.rate_limit import rate_limited

    @router.get("/expensive")
    @rate_limited
    async def my_endpoint(request: Request):
        ...

Every decorated handler draws from one shared "api" bucket per caller. The
ceiling comes from settings (RATE_LIMIT_MAX_REQUESTS per
RATE_LIMIT_WINDOW_MS) and is installed by main.create_app.
"""
import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config.settings import Settings

logger = logging.getLogger(__name__)

API_SCOPE = "api"


def _get_rate_limit_key(request: Request) -> str:
    """
    Identify the caller for rate-limiting.

    Strategy:
      1. If the request carries a JWT, use its user id (sub claim) so the
         limit is per-user regardless of IP.
      2. Otherwise, fall back to client IP.
    """
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        token = auth.split(" ", 1)[1].strip()
        try:
            # Decode without verification – we only need the 'sub' claim
            # to bucket the rate limit. Auth is enforced separately by the
            # Depends(get_current_user) dependency.
            payload = jwt.get_unverified_claims(token)
            sub = payload.get("sub")
            if sub:
                return f"user:{sub}"
        except JWTError:
            pass  # fall through to IP-based limiting

    return get_remote_address(request)


DEFAULT_RATE_LIMIT = "100/900 seconds"

_active_limit = DEFAULT_RATE_LIMIT


def configured_rate_limit() -> str:
    return _active_limit


def configure_rate_limit(settings: Settings) -> str:
    global _active_limit
    _active_limit = settings.rate_limit
    logger.info("Rate limit configured: %s", _active_limit)
    return _active_limit


limiter = Limiter(
    key_func=_get_rate_limit_key,
    storage_uri=os.getenv("REDIS_URL", "memory://"),
    strategy="fixed-window",
)

rate_limited = limiter.shared_limit(configured_rate_limit, scope=API_SCOPE)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("rate_limit_exceeded path=%s limit=%s", request.url.path, exc.detail)
    response = JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMIT_EXCEEDED",
            "message": "Too many requests, please try again later.",
            "display_message": "You're doing that too often. Please wait a moment and try again.",
        },
    )
    view_limit = getattr(request.state, "view_rate_limit", None)
    if view_limit is not None:
        response = limiter._inject_headers(response, view_limit)
    return response
