"""Shared Redis connection used by strict-mode selection locks."""

import redis
from redis.exceptions import RedisError

from question_engine.core.config import settings
from question_engine.core.logging import get_logger

logger = get_logger(__name__)

_client: redis.Redis | None = None


def _connect(url: str) -> redis.Redis:
    client = redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=1,
        socket_timeout=1,
        retry_on_timeout=True,
        health_check_interval=30,
    )
    client.ping()
    return client


def get_redis_client() -> redis.Redis | None:
    """
    Return the process-wide client, connecting on first use.

    None when Redis is disabled, unconfigured or unreachable, unless
    REDIS_REQUIRED is set, in which case those conditions raise.
    """
    global _client

    if not settings.REDIS_ENABLED:
        return None
    if _client is not None:
        return _client

    if not settings.REDIS_URL:
        if settings.REDIS_REQUIRED:
            raise ValueError("REDIS_URL must be set when REDIS_REQUIRED=true")
        logger.warning(
            "REDIS_URL not set, selection locks disabled",
            extra={"event": "redis_unconfigured"},
        )
        return None

    try:
        _client = _connect(settings.REDIS_URL)
    except RedisError as e:
        if settings.REDIS_REQUIRED:
            raise
        logger.warning(
            f"Redis unreachable, selection locks disabled: {e}",
            extra={"event": "redis_unavailable", "error": str(e)},
        )
        return None

    logger.info("Redis connected", extra={"event": "redis_connected"})
    return _client


def is_redis_available() -> bool:
    client = get_redis_client()
    if client is None:
        return False
    try:
        return bool(client.ping())
    except RedisError:
        return False


def init_redis() -> None:
    """Connect at startup so a required Redis fails the boot, not the first request."""
    if not settings.REDIS_ENABLED:
        return
    try:
        get_redis_client()
    except (ValueError, RedisError):
        if settings.REDIS_REQUIRED:
            raise
        logger.warning("Redis initialization failed", extra={"event": "redis_init_failed"}, exc_info=True)
