"""
Cart Session - the cart service owned by one application session.

Created once per session (`create_cart_session`), handed to the UI layer,
and closed with the session. It owns the CartStore, decides which storage
backs it for the current identity, and runs the guest-to-user merge when
the identity collaborator reports a sign-in.
"""
import asyncio
from typing import Optional

from storefront.config import CartSettings, get_settings
from storefront.errors import ERROR_CART_LOAD_FAILED, CartError, PersistenceError
from storefront.logging import get_logger, sanitize_id_for_logging
from .catalog import CatalogLookup, hydrate_lines
from .merge import MergeResolver
from .models import CartLine, CartOwner
from .storage import CartStorage, DurableCartStorage, EphemeralCartStorage
from .store import CartEvent, CartStore

logger = get_logger(__name__)


class CartSession:
    """
    Cart service for one application session.

    Features:
    - Guest carts in ephemeral storage, user carts in durable storage
    - One merge of the guest cart into the user cart on sign-in
    - Load failures degrade to an empty cart instead of raising
    """

    def __init__(
        self,
        session_token: str,
        user_id: Optional[str] = None,
        *,
        ephemeral: CartStorage,
        durable: CartStorage,
        catalog: Optional[CatalogLookup] = None,
        settings: Optional[CartSettings] = None,
    ):
        self.settings = settings or get_settings()
        self.session_token = session_token
        self.user_id = user_id
        self.ephemeral = ephemeral
        self.durable = durable
        self.catalog = catalog
        self.merger = MergeResolver(ephemeral, durable, catalog)
        self.store = CartStore(serialize_saves=self.settings.serialize_saves)
        self._merge_pending = False
        self._load_lock = asyncio.Lock()
        self._unsubscribe_realtime = None
        if self.settings.realtime_enabled:
            self._unsubscribe_realtime = self.store.subscribe(CartEvent.CHANGED, self._broadcast)

    @property
    def owner(self) -> CartOwner:
        if self.user_id:
            return CartOwner.user(self.user_id)
        return CartOwner.anonymous(self.session_token)

    @property
    def merge_pending(self) -> bool:
        return self._merge_pending

    def storage_for(self, owner: CartOwner) -> CartStorage:
        return self.durable if owner.is_authenticated else self.ephemeral

    async def start(self) -> CartStore:
        """Initial load of the current owner's cart."""
        await self._load()
        return self.store

    async def refresh(self) -> CartStore:
        """Reload from storage (another tab changed the cart, or a merge is still pending)."""
        await self._load()
        return self.store

    async def on_authenticated(self, user_id: str) -> CartStore:
        """Identity transition: the guest session signed in as `user_id`."""
        if not user_id:
            raise ValueError("user_id must be a non-empty string")
        if user_id == self.user_id:
            return self.store
        if self.user_id is None:
            self._merge_pending = True
        self.user_id = user_id
        logger.info(f"Cart session signed in as user {sanitize_id_for_logging(user_id)}")
        await self._load()
        return self.store

    async def on_signed_out(self, session_token: Optional[str] = None) -> CartStore:
        """Back to a guest cart, optionally under a fresh session token."""
        self.user_id = None
        self._merge_pending = False
        if session_token:
            self.session_token = session_token
        await self._load()
        return self.store

    async def complete_checkout(self) -> tuple[CartLine, ...]:
        """Empty the cart once an order was placed."""
        return await self.store.clear()

    async def close(self) -> None:
        """Tear down: wait for saves in flight and drop all listeners."""
        if self._unsubscribe_realtime is not None:
            self._unsubscribe_realtime()
            self._unsubscribe_realtime = None
        await self.store.close()

    async def __aenter__(self) -> "CartSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _load(self) -> None:
        async with self._load_lock:
            # A load must not overwrite optimistic lines whose save is still pending
            await self.store.wait_idle()
            owner = self.owner
            storage = self.storage_for(owner)
            self.store.begin_loading(owner, storage)

            if owner.is_authenticated and self._merge_pending:
                try:
                    outcome = await self.merger.run(self.session_token, owner.id)
                except Exception as e:
                    logger.error(
                        f"Cart merge for user {sanitize_id_for_logging(owner.id)} failed: {e}",
                        exc_info=True,
                    )
                    self.store.seed([], error=PersistenceError(ERROR_CART_LOAD_FAILED, owner=owner.id))
                    return
                self._merge_pending = not outcome.completed
                error = None
                if not outcome.completed:
                    error = PersistenceError(ERROR_CART_LOAD_FAILED, owner=owner.id)
                self.store.seed(outcome.lines, error=error)
                return

            try:
                lines = await hydrate_lines(await storage.load(owner.id), self.catalog)
            except Exception as e:
                logger.error(
                    f"Failed to load {storage.name} cart for {owner.kind} "
                    f"{sanitize_id_for_logging(owner.id)}: {e}",
                    exc_info=True,
                )
                error = e if isinstance(e, CartError) else PersistenceError(ERROR_CART_LOAD_FAILED, owner=owner.id)
                self.store.seed([], error=error)
                return

            self.store.seed(lines)

    async def _broadcast(self, store: CartStore) -> None:
        from storefront.realtime import emit_cart_updated

        if store.owner is not None:
            await emit_cart_updated(store.owner.key, store.total_items)


async def create_cart_session(
    session_token: str,
    user_id: Optional[str] = None,
    *,
    settings: Optional[CartSettings] = None,
) -> CartSession:
    """Build a started CartSession on the configured Supabase and Redis clients."""
    from storefront.db import get_redis, get_supabase
    from storefront.services.repositories import CartItemRepository, CatalogRepository

    settings = settings or get_settings()
    client = await get_supabase()
    session = CartSession(
        session_token,
        user_id,
        ephemeral=EphemeralCartStorage(get_redis(), ttl=settings.guest_cart_ttl),
        durable=DurableCartStorage(CartItemRepository(client, table=settings.cart_items_table)),
        catalog=CatalogRepository(client),
        settings=settings,
    )
    await session.start()
    return session
