"""Per-IP rate limiting for the public phone-verification endpoints (slowapi).

Counters live in Redis when REDIS_URL is reachable so every worker shares
them; otherwise (tests, single-process dev) they are kept in memory.
"""

import logging

import redis
from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

MEMORY_STORAGE = "memory://"


def client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    return first or get_remote_address(request)


def _storage_uri(config: Settings) -> str:
    if config.TESTING or not config.REDIS_URL:
        return MEMORY_STORAGE
    try:
        redis.from_url(config.REDIS_URL, socket_connect_timeout=1).ping()
    except redis.RedisError as exc:
        logger.warning("Redis unavailable for rate limiting, using in-memory", extra={"error": str(exc)})
        return MEMORY_STORAGE
    return config.REDIS_URL


def build_limiter(config: Settings = settings) -> Limiter:
    return Limiter(key_func=client_ip, storage_uri=_storage_uri(config))


limiter = build_limiter()

# Applied per route with @limiter.limit(OTP_LIMIT)
OTP_LIMIT = f"{settings.RATE_LIMIT_OTP}/minute"
