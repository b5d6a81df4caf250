"""Per-learner selection lock on Redis (token-owned, expiring), failing open."""

from collections.abc import Iterator
from contextlib import contextmanager

from redis.exceptions import LockNotOwnedError, RedisError

from question_engine.core.logging import get_logger
from question_engine.core.redis_client import get_redis_client

logger = get_logger(__name__)

DEFAULT_LOCK_TTL = 10


def selection_lock_key(user_id: str, subject_id: str) -> str:
    return f"selection:{user_id}:{subject_id}"


@contextmanager
def redis_lock(lock_key: str, ttl_seconds: int = DEFAULT_LOCK_TTL) -> Iterator[bool]:
    """
    Hold lock_key for the duration of the block (redis-py Lock, non-blocking).

    Yields False when another holder has the key. Yields True without
    locking when Redis is disabled or errors, so selection keeps working
    without strict serialization. The key expires after ttl_seconds even
    if the holder dies; a holder that outlives its ttl never deletes a key
    taken by someone else since.

        with redis_lock(selection_lock_key(user_id, subject_id)) as acquired:
            if not acquired:
                raise SelectionInProgressError(...)
    """
    client = get_redis_client()
    if client is None:
        logger.warning(
            f"Redis unavailable, running without lock {lock_key}",
            extra={"event": "selection_lock_skipped", "lock_key": lock_key},
        )
        yield True
        return

    # Lock stores a random token and only deletes the key while it still holds that token
    lock = client.lock(lock_key, timeout=ttl_seconds, blocking=False)
    try:
        acquired = bool(lock.acquire())
    except RedisError as e:
        logger.error(
            f"Could not acquire {lock_key}: {e}",
            extra={"event": "selection_lock_error", "lock_key": lock_key, "error": str(e)},
        )
        yield True
        return

    if not acquired:
        logger.info(
            f"Lock {lock_key} held elsewhere",
            extra={"event": "selection_lock_busy", "lock_key": lock_key},
        )
        yield False
        return

    try:
        yield True
    finally:
        try:
            lock.release()
        except LockNotOwnedError:
            logger.warning(
                f"Lock {lock_key} expired before release and was not deleted",
                extra={"event": "selection_lock_expired", "lock_key": lock_key, "ttl_seconds": ttl_seconds},
            )
        except RedisError as e:
            # Expires on its own after ttl_seconds
            logger.error(
                f"Could not release {lock_key}: {e}",
                extra={"event": "selection_lock_error", "lock_key": lock_key, "error": str(e)},
            )
