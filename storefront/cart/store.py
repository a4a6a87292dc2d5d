"""
Cart Store - visible cart state and the optimistic mutation pipeline.

Every mutation follows the same steps:
1. snapshot the current lines
2. compute the new lines (inputs validated first, nothing applied on error)
3. publish the new lines and notify subscribers
4. persist the full new set through the owner's storage
5. on failure, restore the snapshot, notify again and raise PersistenceError
   (when an earlier overlapping save failed too, the last lines confirmed
   saved are restored instead)

Steps 1-3 run before the first await, so the new state is visible to the
caller and to subscribers immediately. Saves are serialized per store unless
`serialize_saves` is off, in which case concurrent saves complete in network
order and the last one to land wins.
"""
import asyncio
import inspect
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

from storefront.errors import (
    ERROR_BULK_LENGTH_MISMATCH,
    ERROR_CART_NOT_READY,
    ERROR_CART_SAVE_FAILED,
    CartError,
    CartNotReadyError,
    PersistenceError,
    ValidationError,
)
from storefront.logging import get_logger, sanitize_id_for_logging
from storefront.services.models import Product, ProductCombo, ProductVariant
from storefront.services.money import to_float
from .merge import collapse_lines
from .models import CartLine, CartOwner, LineKey
from .pricing import build_combo_line, build_product_line, cart_totals, effective_price, line_total
from .storage import CartStorage

logger = get_logger(__name__)


class CartState(str, Enum):
    """Lifecycle of a cart store."""
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    MUTATING = "mutating"
    ERROR = "error"  # transient, while a failure is being rolled back or degraded


class CartEvent(str, Enum):
    """Notifications published by the store."""
    LINE_ADDED = "line_added"  # e.g. open the mini cart
    CHANGED = "cart_changed"  # re-render, cross-tab refresh


Listener = Callable[["CartStore"], Any]


class CartStore:
    """
    Holds the visible cart of one owner and applies every mutation to it.

    Only the pipeline writes `lines`; everything else reads it or the
    derived totals.
    """

    def __init__(
        self,
        owner: Optional[CartOwner] = None,
        storage: Optional[CartStorage] = None,
        *,
        serialize_saves: bool = True,
    ):
        self._owner = owner
        self._storage = storage
        self._lines: tuple[CartLine, ...] = ()
        self._state = CartState.UNINITIALIZED
        self._listeners: dict[CartEvent, List[Listener]] = {event: [] for event in CartEvent}
        self._listener_tasks: set[asyncio.Task] = set()
        self._serialize_saves = serialize_saves
        self._save_lock = asyncio.Lock()
        self._revision = 0
        self._saved_revision = 0
        self._saved_lines: tuple[CartLine, ...] = ()
        self._failed_revisions: set[int] = set()
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False
        self.error: Optional[CartError] = None
        self.degraded = False

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def owner(self) -> Optional[CartOwner]:
        return self._owner

    @property
    def state(self) -> CartState:
        return self._state

    @property
    def lines(self) -> tuple[CartLine, ...]:
        return self._lines

    @property
    def total_items(self) -> int:
        return cart_totals(self._lines)[0]

    @property
    def total_price(self) -> Decimal:
        return cart_totals(self._lines)[1]

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get(self, key: LineKey) -> Optional[CartLine]:
        """Line with the given composite key, if any."""
        key = LineKey(*key)
        return next((line for line in self._lines if line.key == key), None)

    def line_price(self, line: CartLine) -> Decimal:
        """Effective unit price of a line."""
        return effective_price(line)

    def summary(self) -> dict:
        """Cart summary for UI and assistant context."""
        if not self._lines:
            return {
                "is_empty": True,
                "total_items": 0,
                "total_price": 0,
                "items": [],
                "degraded": self.degraded,
            }

        total_items, total_price = cart_totals(self._lines)
        return {
            "is_empty": False,
            "total_items": total_items,
            "total_price": to_float(total_price),
            "items": [
                {
                    "kind": line.kind,
                    "product_id": line.key.product_id,
                    "variant_id": line.key.variant_id,
                    "combo_id": line.key.combo_id,
                    "name": line.name,
                    "image": line.image,
                    "quantity": line.quantity,
                    "unit_price": to_float(effective_price(line)),
                    "total": to_float(line_total(line)),
                }
                for line in self._lines
            ],
            "degraded": self.degraded,
        }

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def subscribe(self, event: CartEvent, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that removes it again."""
        event = CartEvent(event)
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return unsubscribe

    def _publish(self, event: CartEvent) -> None:
        for listener in list(self._listeners[event]):
            try:
                result = listener(self)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._listener_tasks.add(task)
                    task.add_done_callback(self._listener_done)
            except Exception as e:
                logger.error(f"Cart listener for {event.value} failed: {e}", exc_info=True)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._listener_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Async cart listener failed: {task.exception()}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _set_state(self, state: CartState) -> None:
        if state is not self._state:
            logger.debug(f"Cart {self._owner_label()} {self._state.value} -> {state.value}")
            self._state = state

    def _owner_label(self) -> str:
        if self._owner is None:
            return "N/A"
        return f"{self._owner.kind}:{sanitize_id_for_logging(self._owner.id)}"

    def begin_loading(self, owner: CartOwner, storage: CartStorage) -> None:
        """Switch the store to an owner and mark it as loading.

        Saves still in flight for a previous owner can no longer roll back
        this store's lines.
        """
        if self._closed:
            raise CartNotReadyError(ERROR_CART_NOT_READY)
        self._owner = owner
        self._storage = storage
        self._revision += 1
        self.error = None
        self.degraded = False
        self._failed_revisions.clear()
        self._set_state(CartState.LOADING)

    def seed(self, lines: Iterable[CartLine], *, error: Optional[CartError] = None) -> None:
        """Replace the visible lines after a load or merge.

        With `error` the store is marked degraded: the lines (usually empty)
        are shown and the failure is kept on `store.error`.
        """
        collapsed = collapse_lines(lines, "load")
        for anomaly in collapsed.anomalies:
            logger.warning(f"Cart {self._owner_label()} had duplicate key {tuple(anomaly.key)}, combined")
        if error is not None:
            self._set_state(CartState.ERROR)
        self._lines = tuple(collapsed.lines)
        self._saved_revision = self._revision
        self._saved_lines = self._lines
        self.error = error
        self.degraded = error is not None
        self._set_state(CartState.MUTATING if self._in_flight else CartState.READY)
        self._publish(CartEvent.CHANGED)

    async def wait_idle(self) -> None:
        """Wait until no save is in flight."""
        await self._idle.wait()

    async def close(self) -> None:
        """Wait for in-flight saves, then drop listeners. The store rejects mutations afterwards."""
        if self._closed:
            return
        await self.wait_idle()
        self._closed = True
        for listeners in self._listeners.values():
            listeners.clear()
        self._set_state(CartState.UNINITIALIZED)

    def _ensure_ready(self) -> None:
        if (
            self._closed
            or self._owner is None
            or self._storage is None
            or self._state in (CartState.UNINITIALIZED, CartState.LOADING)
        ):
            raise CartNotReadyError(ERROR_CART_NOT_READY)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def add_line(self, line: CartLine) -> tuple[CartLine, ...]:
        """Add a line, or grow the quantity of the line with the same key."""
        self._ensure_ready()
        if not isinstance(line, CartLine):
            raise ValidationError(f"Expected a cart line, got {type(line).__name__}")
        return await self._commit(self._with_line(list(self._lines), line), added=True)

    async def add_product(
        self,
        product: Product,
        quantity: int = 1,
        variant_id: Optional[str] = None,
    ) -> tuple[CartLine, ...]:
        """Add a product (its default variant when it has one and none is given)."""
        self._ensure_ready()
        return await self.add_line(build_product_line(product, quantity, variant_id))

    async def add_variant(
        self,
        product: Product,
        variant: ProductVariant | str,
        quantity: int = 1,
    ) -> tuple[CartLine, ...]:
        """Add a specific variant of a product."""
        self._ensure_ready()
        variant_id = variant.id if isinstance(variant, ProductVariant) else variant
        if not variant_id:
            raise ValidationError("variant must be a variant or a non-empty variant id")
        return await self.add_line(build_product_line(product, quantity, variant_id))

    async def add_combo(self, combo: ProductCombo, quantity: int = 1) -> tuple[CartLine, ...]:
        """Add a combo at its fixed bundle price."""
        self._ensure_ready()
        return await self.add_line(build_combo_line(combo, quantity))

    async def add_products(
        self,
        products: Sequence[Product],
        quantities: Sequence[int],
    ) -> tuple[CartLine, ...]:
        """Add several products in one mutation. All inputs are checked before anything changes."""
        self._ensure_ready()
        if len(products) != len(quantities):
            raise ValidationError(ERROR_BULK_LENGTH_MISMATCH)
        new_lines = [build_product_line(p, q) for p, q in zip(products, quantities)]
        if not new_lines:
            return self._lines

        lines = list(self._lines)
        for line in new_lines:
            lines = self._with_line(lines, line)
        return await self._commit(lines, added=True)

    async def remove_line(self, key: LineKey) -> tuple[CartLine, ...]:
        """Remove the line with the given key."""
        self._ensure_ready()
        key = LineKey(*key)
        if self.get(key) is None:
            logger.debug(f"Cart {self._owner_label()}: nothing to remove for {tuple(key)}")
            return self._lines
        return await self._commit([line for line in self._lines if line.key != key])

    async def set_quantity(self, key: LineKey, quantity: int) -> tuple[CartLine, ...]:
        """Set a line's quantity; zero or below removes the line."""
        self._ensure_ready()
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"quantity must be an integer, got {quantity!r}")
        if quantity <= 0:
            return await self.remove_line(key)

        key = LineKey(*key)
        if self.get(key) is None:
            logger.warning(f"Cart {self._owner_label()}: no line {tuple(key)} to update")
            return self._lines
        return await self._commit([
            line.with_quantity(quantity) if line.key == key else line
            for line in self._lines
        ])

    async def clear(self) -> tuple[CartLine, ...]:
        """Empty the cart (explicit clear or completed checkout)."""
        self._ensure_ready()
        return await self._commit([])

    @staticmethod
    def _with_line(lines: List[CartLine], line: CartLine) -> List[CartLine]:
        for i, existing in enumerate(lines):
            if existing.key == line.key:
                # Keep the existing price snapshot
                lines[i] = existing.with_quantity(existing.quantity + line.quantity)
                return lines
        lines.append(line)
        return lines

    async def _commit(self, new_lines: List[CartLine], *, added: bool = False) -> tuple[CartLine, ...]:
        previous = self._lines
        self._revision += 1
        revision = self._revision
        owner, storage = self._owner, self._storage

        committed = tuple(new_lines)
        self._lines = committed
        self.error = None
        self._in_flight += 1
        self._idle.clear()
        self._set_state(CartState.MUTATING)
        if added:
            self._publish(CartEvent.LINE_ADDED)
        self._publish(CartEvent.CHANGED)

        payloads = [line.to_payload() for line in new_lines]
        try:
            await self._persist(storage, owner, payloads)
        except Exception as e:
            error = e if isinstance(e, PersistenceError) else PersistenceError(ERROR_CART_SAVE_FAILED, owner=owner.id)
            self._finish_save()
            self._rollback(revision, owner, previous, error)
            if error is e:
                raise
            raise error from e

        self._mark_saved(revision, owner, committed)
        self._finish_save()
        return self._lines

    async def _persist(self, storage: CartStorage, owner: CartOwner, payloads: List[dict]) -> None:
        if self._serialize_saves:
            async with self._save_lock:
                await storage.replace(owner.id, payloads)
        else:
            await storage.replace(owner.id, payloads)

    def _mark_saved(self, revision: int, owner: CartOwner, committed: tuple[CartLine, ...]) -> None:
        if owner != self._owner or revision <= self._saved_revision:
            return
        self._saved_revision = revision
        self._saved_lines = committed
        # Storage now holds these lines, older failures included
        self._failed_revisions = {r for r in self._failed_revisions if r > revision}

    def _finish_save(self) -> None:
        self._in_flight -= 1
        if not self._in_flight:
            self._idle.set()
            if self._state is CartState.MUTATING:
                self._set_state(CartState.READY)

    def _rollback(
        self,
        revision: int,
        owner: CartOwner,
        previous: tuple[CartLine, ...],
        error: PersistenceError,
    ) -> None:
        if owner != self._owner or self._state is CartState.LOADING:
            # The store was reloaded or moved to another owner while this save was in flight
            logger.warning(f"Cart save for previous owner failed: {error}")
            return
        self._set_state(CartState.ERROR)
        self.error = error
        if revision == self._revision:
            if any(r > self._saved_revision for r in self._failed_revisions):
                # `previous` still carries an earlier failed change; go back to what storage holds
                self._lines = self._saved_lines
            else:
                self._lines = previous
            self._failed_revisions.clear()
            logger.warning(f"Cart {self._owner_label()} save failed, rolled back: {error}")
        else:
            # A newer mutation already replaced these lines and saves its own snapshot
            self._failed_revisions.add(revision)
            logger.warning(f"Cart {self._owner_label()} save failed after being superseded: {error}")
        self._set_state(CartState.MUTATING if self._in_flight else CartState.READY)
        self._publish(CartEvent.CHANGED)
