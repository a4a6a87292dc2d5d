"""Realtime Module - cart change broadcast.

Emits events via Redis Streams so other tabs and devices of the same owner
can refresh their cart.
"""

import json

from storefront.db import RedisKeys, get_redis
from storefront.logging import get_logger

logger = get_logger(__name__)


async def emit_cart_updated(owner_key: str, total_items: int, redis=None) -> None:
    """Emit cart.updated event for a cart owner.

    Args:
        owner_key: Owner key ("user:{id}" or "anonymous:{token}")
        total_items: Item count after the change
        redis: Redis client (defaults to the shared client)
    """
    try:
        redis = redis or get_redis()
        payload = {
            "event": "cart.updated",
            "owner": owner_key,
            "total_items": total_items,
        }
        await redis.xadd(RedisKeys.cart_stream_key(owner_key), "*", {"data": json.dumps(payload)})
        logger.debug("Emitted cart.updated")
    except Exception as e:
        logger.warning(f"Failed to emit cart.updated: {e}", exc_info=True)
