"""
Rate limiting for the auth endpoints.
Uses SlowAPI; limits are shared across instances when RATE_LIMIT_STORAGE_URI
points at Redis, otherwise they are kept in process memory.
"""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger("webide.rate_limiter")


def get_real_client_ip(request: Request) -> str:
    """
    Get the real client IP, accounting for reverse proxies.
    Checks X-Forwarded-For header first, then falls back to direct IP.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # First entry in the chain is the original client
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request) or "unknown"


def get_user_identifier(request: Request) -> str:
    """
    Get a unique identifier for rate limiting.
    Uses the authenticated user id if available, otherwise client IP.
    """
    identity = getattr(request.state, "user", None)
    if identity is not None and getattr(identity, "user_id", None):
        return f"user:{identity.user_id}"
    return f"ip:{get_real_client_ip(request)}"


def rate_limiting_disabled(request: Request) -> bool:
    """
    Exempt every request to an application built with RATE_LIMIT_ENABLED=false.

    The limiter is shared by all applications in the process, so the switch is
    read from the settings of the application serving the request.
    """
    app_settings = getattr(request.app.state, "settings", settings)
    return not app_settings.RATE_LIMIT_ENABLED


def _storage_uri() -> str:
    uri = settings.RATE_LIMIT_STORAGE_URI
    if uri:
        # Mask credentials in logs
        logger.info(f"Rate limiter using shared storage: {uri.split('@')[-1]}")
        return uri
    if settings.is_production:
        logger.warning(
            "PRODUCTION WARNING: Rate limiting is using in-memory storage. "
            "Limits won't sync across instances; configure RATE_LIMIT_STORAGE_URI."
        )
    return "memory://"


limiter = Limiter(
    key_func=get_user_identifier,
    storage_uri=_storage_uri(),
    strategy="fixed-window",
    # Routes return pydantic models, so there is no Response object to attach headers to
    headers_enabled=False,
)


class RateLimits:
    """Pre-configured rate limits for different endpoint types."""

    # Authentication endpoints - strict limits to prevent brute force
    AUTH_LOGIN = "5/minute"
    AUTH_REGISTER = "3/minute"
    AUTH_REFRESH = "30/minute"
    AUTH_VERIFY = "120/minute"

    API_READ = "100/minute"
    API_WRITE = "30/minute"
