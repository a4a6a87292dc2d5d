"""
Cart persistence adapters.

Both strategies share one contract: `load` returns the owner's stored line
payloads and `replace` overwrites them with a full new set.

- EphemeralCartStorage: guest carts in Upstash Redis, one JSON list per
  session token, expiring after the configured TTL.
- DurableCartStorage: authenticated carts in the Supabase `cart_items`
  table, replaced by deleting every row of the user and inserting the set.
"""
import json
from abc import ABC, abstractmethod
from typing import List, Optional

from storefront.db import RedisKeys, get_redis
from storefront.errors import ERROR_CART_UNAVAILABLE, PersistenceError, ValidationError
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.normalize import normalize_cart_row
from storefront.services.repositories.cart_repo import CartItemRepository

logger = get_logger(__name__)


class CartStorage(ABC):
    """Load/replace contract for one kind of cart owner."""

    name: str = ""

    @abstractmethod
    async def load(self, owner_id: str) -> List[dict]:
        """Stored line payloads of an owner (empty if none)."""

    @abstractmethod
    async def replace(self, owner_id: str, payloads: List[dict]) -> bool:
        """Overwrite the owner's lines. Raises PersistenceError on failure."""

    async def clear(self, owner_id: str) -> bool:
        """Remove every stored line of an owner."""
        return await self.replace(owner_id, [])


class EphemeralCartStorage(CartStorage):
    """Guest cart storage in Redis with a sliding TTL."""

    name = "ephemeral"

    def __init__(self, redis=None, ttl: int = 86400):
        self._redis = redis  # Lazy initialization
        self.ttl = ttl

    @property
    def redis(self):
        """Get Redis client (lazy initialization)."""
        if self._redis is None:
            self._redis = get_redis()
        return self._redis

    async def load(self, owner_id: str) -> List[dict]:
        """Load a guest cart. Unreadable data degrades to an empty cart."""
        key = RedisKeys.guest_cart_key(owner_id)
        try:
            data = await self.redis.get(key)
        except Exception as e:
            logger.error(
                f"Failed to read guest cart {sanitize_id_for_logging(owner_id)} from Redis: {e}",
                exc_info=True,
            )
            return []

        if not data:
            return []

        try:
            payloads = json.loads(data)
            if not isinstance(payloads, list) or not all(isinstance(p, dict) for p in payloads):
                raise TypeError(f"expected a list of objects, got {type(payloads).__name__}")
        except (json.JSONDecodeError, TypeError) as e:
            # Corrupted data - clear it and start over
            logger.warning(f"Corrupted guest cart {sanitize_id_for_logging(owner_id)}: {e}")
            try:
                await self.redis.delete(key)
            except Exception as delete_error:
                logger.warning(f"Failed to delete corrupted guest cart: {delete_error}")
            return []

        return payloads

    async def replace(self, owner_id: str, payloads: List[dict]) -> bool:
        """Overwrite a guest cart; an empty set deletes the key."""
        key = RedisKeys.guest_cart_key(owner_id)
        try:
            if payloads:
                await self.redis.set(key, json.dumps(payloads), ex=self.ttl)
            else:
                await self.redis.delete(key)
            return True
        except Exception as e:
            logger.error(f"Failed to save guest cart to Redis: {e}")
            raise PersistenceError(ERROR_CART_UNAVAILABLE, owner=owner_id) from e


class DurableCartStorage(CartStorage):
    """Authenticated cart storage in Supabase (full replace, no diffing)."""

    name = "durable"

    def __init__(self, repository: Optional[CartItemRepository] = None, client=None, table: str = "cart_items"):
        if repository is None:
            if client is None:
                raise ValueError("DurableCartStorage needs a repository or a Supabase client")
            repository = CartItemRepository(client, table=table)
        self.repository = repository

    async def load(self, owner_id: str) -> List[dict]:
        """Load a user's cart rows. Raises PersistenceError when the store is unreachable."""
        try:
            rows = await self.repository.get_rows(owner_id)
        except Exception as e:
            logger.error(f"Failed to load cart rows for user {sanitize_id_for_logging(owner_id)}: {e}")
            raise PersistenceError(ERROR_CART_UNAVAILABLE, owner=owner_id) from e

        payloads = []
        for row in rows:
            try:
                payloads.append(normalize_cart_row(row))
            except ValidationError as e:
                logger.warning(f"Skipping malformed cart row for user {sanitize_id_for_logging(owner_id)}: {e}")
        return payloads

    async def replace(self, owner_id: str, payloads: List[dict]) -> bool:
        """Delete all rows of the user, then insert the given set."""
        rows = [normalize_cart_row(p) for p in payloads]
        try:
            await self.repository.delete_all(owner_id)
            await self.repository.insert_rows(owner_id, rows)
            return True
        except Exception as e:
            logger.error(f"Failed to replace cart rows for user {sanitize_id_for_logging(owner_id)}: {e}")
            raise PersistenceError(ERROR_CART_UNAVAILABLE, owner=owner_id) from e
