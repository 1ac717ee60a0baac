import logging
from uuid import UUID

from redis.asyncio import Redis

logger = logging.getLogger(__name__)

# Global Redis client instance
redis_client: Redis | None = None


async def get_redis() -> Redis:
    """
    Get the Redis client instance.

    Returns:
        Redis client instance

    Raises:
        RuntimeError: If Redis client is not initialized
    """
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized")
    return redis_client


def unread_cache_key(user_id: UUID | str) -> str:
    return f"chat:unread:{user_id}"


async def get_cached_unread_total(user_id: UUID | str) -> int | None:
    """
    Read the cached total unread count for a user.

    Returns None on a cache miss, when Redis is not configured, or when the
    read fails; the caller then computes the value from the database.
    """
    if redis_client is None:
        return None
    try:
        cached = await redis_client.get(unread_cache_key(user_id))
    except Exception:
        logger.warning("Redis cache read failed for unread count")
        return None
    if cached is None:
        return None
    return int(cached)


async def set_cached_unread_total(user_id: UUID | str, value: int, ttl_seconds: int) -> None:
    if redis_client is None:
        return
    try:
        await redis_client.setex(unread_cache_key(user_id), ttl_seconds, str(value))
    except Exception:
        logger.warning("Redis cache write failed for unread count")


async def invalidate_unread_totals(*user_ids: UUID | str) -> None:
    """
    Drop the cached unread totals of the given users.

    Example:
        await invalidate_unread_totals(conversation.buyer_id, conversation.seller_id)
    """
    if redis_client is None or not user_ids:
        return
    try:
        await redis_client.delete(*(unread_cache_key(uid) for uid in user_ids))
    except Exception:
        logger.warning("Failed to invalidate unread cache for users %s", user_ids)
