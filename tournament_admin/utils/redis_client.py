"""Redis client for the distributed settlement lock."""

from redis.asyncio import ConnectionPool, Redis

from tournament_admin.config import Settings

# Global Redis connection pool and client instance
redis_pool: ConnectionPool | None = None
redis_client: Redis | None = None


async def init_redis(settings: Settings) -> Redis:
    """Initialize Redis connection with connection pool.

    Raises:
        ValueError: If ``redis_url`` is not configured
        redis.exceptions.ConnectionError: If the server is unreachable
    """
    global redis_pool, redis_client

    if not settings.redis_url:
        raise ValueError("redis_url is not configured")

    redis_pool = ConnectionPool.from_url(
        settings.redis_url,
        max_connections=settings.redis_max_connections,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
        retry_on_timeout=True,
        encoding="utf-8",
        decode_responses=True,
    )
    redis_client = Redis(connection_pool=redis_pool)

    # Test connection
    await redis_client.ping()
    return redis_client


async def close_redis() -> None:
    """Close Redis connection and pool."""
    global redis_pool, redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
    if redis_pool:
        await redis_pool.disconnect()
        redis_pool = None


def get_redis_client() -> Redis | None:
    """Current client, or None when Redis is not configured."""
    return redis_client
