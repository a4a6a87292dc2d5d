"""
Database Module - Supabase and Redis Clients

Provides singleton instances of:
- Async Supabase client for the durable cart and the catalog
- Async Upstash Redis client for guest carts and realtime streams
"""

from typing import Optional

from supabase._async.client import AsyncClient, create_client as acreate_client
from upstash_redis.asyncio import Redis as AsyncRedis

from storefront.config import get_settings


_async_supabase_client: Optional[AsyncClient] = None
_redis_client: Optional[AsyncRedis] = None


async def get_supabase() -> AsyncClient:
    """
    Get async Supabase client (singleton).
    """
    global _async_supabase_client

    if _async_supabase_client is None:
        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_service_role_key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")
        _async_supabase_client = await acreate_client(
            settings.supabase_url, settings.supabase_service_role_key
        )

    return _async_supabase_client


def get_redis() -> AsyncRedis:
    """
    Get async Upstash Redis client (singleton).

    Uses standard Upstash env var names:
    - UPSTASH_REDIS_REST_URL
    - UPSTASH_REDIS_REST_TOKEN

    Used for:
    - Guest (anonymous) carts
    - Realtime cart streams
    """
    global _redis_client

    if _redis_client is None:
        settings = get_settings()
        if not settings.redis_rest_url or not settings.redis_rest_token:
            raise ValueError("UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN must be set")
        _redis_client = AsyncRedis(url=settings.redis_rest_url, token=settings.redis_rest_token)

    return _redis_client


class RedisKeys:
    """Redis key prefixes for different data types."""

    GUEST_CART = "cart:guest:"  # cart:guest:{session_token}
    CART_STREAM = "stream:realtime:cart:"  # stream:realtime:cart:{owner_key}

    @staticmethod
    def guest_cart_key(session_token: str) -> str:
        return f"{RedisKeys.GUEST_CART}{session_token}"

    @staticmethod
    def cart_stream_key(owner_key: str) -> str:
        return f"{RedisKeys.CART_STREAM}{owner_key}"


class Tables:
    """Supabase table names."""

    PRODUCTS = "products"
    PRODUCT_COMBOS = "product_combos"
