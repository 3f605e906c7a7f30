"""
Simple in-memory rate limiter for API endpoints.
"""
import logging
import time
from collections import defaultdict
from typing import Dict, List

from fastapi import Request, status

from marketplace.core import config
from marketplace.core.errors import ApiError

logger = logging.getLogger(__name__)

# {ip: [request timestamps inside the current window]}
rate_limit_store: Dict[str, List[float]] = defaultdict(list)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    # First address in the proxy chain
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    if request.client:
        return request.client.host

    return "unknown"


def check_rate_limit(request: Request, max_requests: int = 10, window_seconds: int = 60) -> None:
    """
    Check if client has exceeded rate limit.

    Raises:
        ApiError: 429 if rate limit exceeded
    """
    ip = get_client_ip(request)
    now = time.time()

    cutoff = now - window_seconds
    rate_limit_store[ip] = [ts for ts in rate_limit_store[ip] if ts > cutoff]

    request_count = len(rate_limit_store[ip])
    if request_count >= max_requests:
        logger.warning(f"Rate limit exceeded for IP: {ip} ({request_count} requests in {window_seconds}s)")
        raise ApiError(
            status.HTTP_429_TOO_MANY_REQUESTS,
            f"Rate limit exceeded. Maximum {max_requests} requests per {window_seconds} seconds.",
        )

    rate_limit_store[ip].append(now)
    logger.debug(f"Rate limit check passed for IP: {ip} ({request_count + 1}/{max_requests})")


def rate_limit(max_requests: int = None, window_seconds: int = None):
    """Route dependency applying check_rate_limit with the configured defaults."""
    def dependency(request: Request) -> None:
        check_rate_limit(
            request,
            max_requests=max_requests or config.RATE_LIMIT_MAX_REQUESTS,
            window_seconds=window_seconds or config.RATE_LIMIT_WINDOW_SECONDS,
        )
    return dependency
