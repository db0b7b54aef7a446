"""Rate limiting service for API endpoints."""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.listings.config import settings

logger = logging.getLogger(__name__)


def get_client_key(request: Request) -> str:
    """
    Build the rate limit key for a request.

    Auth callbacks arrive before any session exists, so limits are applied
    per client IP address.

    Args:
        request: FastAPI request object

    Returns:
        Rate limit key string
    """
    return f"ip:{get_remote_address(request)}"


# Initialize rate limiter with in-memory storage
limiter = Limiter(
    key_func=get_client_key,
    default_limits=[],  # No global limits, we'll apply per-endpoint
    storage_uri="memory://",  # In-memory storage for single-instance deployment
    enabled=settings.rate_limit_enabled,
)


class RateLimitTiers:
    """
    Rate limit tiers for different endpoint categories.

    Unauthenticated endpoints use IP-based rate limiting.
    """

    # Auth redirects: a browser normally hits the callback once per sign-in,
    # retries come from users re-clicking expired email links
    AUTH_CALLBACK = ["20 per minute", "100 per hour"]


# Note: the decorator requires the endpoint to have a 'request: Request' parameter
auth_callback_rate_limit = limiter.limit(";".join(RateLimitTiers.AUTH_CALLBACK))
