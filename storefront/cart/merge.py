"""
Guest-to-user cart merge, run once when an anonymous session signs in.

Quantities for keys present on both sides are added together; keys present
on one side only are kept unchanged (guest lines keep their own price
snapshot). The merged set is written to the durable store before the guest
cart is cleared, so a failure at any step leaves the guest lines in place.
"""
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from storefront.errors import PersistenceError
from storefront.logging import get_logger, sanitize_id_for_logging
from .catalog import CatalogLookup, hydrate_lines
from .models import CartLine, LineKey
from .storage import CartStorage

logger = get_logger(__name__)


@dataclass(frozen=True)
class MergeAnomaly:
    """Duplicate key found on one side of a merge; resolved by adding quantities."""
    key: LineKey
    source: str
    quantities: tuple[int, ...]


@dataclass
class MergeResult:
    """Lines produced by `merge_lines` plus any anomalies found on the way."""
    lines: List[CartLine]
    anomalies: List[MergeAnomaly] = field(default_factory=list)


@dataclass
class MergeOutcome:
    """Result of a merge run. `completed` is False when it must be retried later."""
    lines: List[CartLine]
    completed: bool
    anomalies: List[MergeAnomaly] = field(default_factory=list)


def collapse_lines(lines: Iterable[CartLine], source: str = "") -> MergeResult:
    """Collapse duplicate keys within one list by adding their quantities.

    The first occurrence keeps its position and price snapshot.
    """
    collapsed: List[CartLine] = []
    index: dict[LineKey, int] = {}
    seen: dict[LineKey, list[int]] = {}
    for line in lines:
        position = index.get(line.key)
        seen.setdefault(line.key, []).append(line.quantity)
        if position is None:
            index[line.key] = len(collapsed)
            collapsed.append(line)
        else:
            existing = collapsed[position]
            collapsed[position] = existing.with_quantity(existing.quantity + line.quantity)

    anomalies = [
        MergeAnomaly(key=key, source=source, quantities=tuple(quantities))
        for key, quantities in seen.items()
        if len(quantities) > 1
    ]
    return MergeResult(collapsed, anomalies)


def merge_lines(anonymous: Iterable[CartLine], durable: Iterable[CartLine]) -> MergeResult:
    """Merge guest lines into durable lines (durable order first, then new guest lines)."""
    durable_side = collapse_lines(durable, "durable")
    anonymous_side = collapse_lines(anonymous, "anonymous")

    merged = list(durable_side.lines)
    index = {line.key: i for i, line in enumerate(merged)}
    for line in anonymous_side.lines:
        position = index.get(line.key)
        if position is None:
            index[line.key] = len(merged)
            merged.append(line)
        else:
            existing = merged[position]
            merged[position] = existing.with_quantity(existing.quantity + line.quantity)

    return MergeResult(merged, durable_side.anomalies + anonymous_side.anomalies)


class MergeResolver:
    """Moves a guest cart into a user's durable cart."""

    def __init__(self, ephemeral: CartStorage, durable: CartStorage, catalog: Optional[CatalogLookup] = None):
        self.ephemeral = ephemeral
        self.durable = durable
        self.catalog = catalog

    async def run(self, session_token: str, user_id: str) -> MergeOutcome:
        """Merge the guest cart of `session_token` into the cart of `user_id`."""
        safe_user = sanitize_id_for_logging(user_id)

        guest_lines = await hydrate_lines(await self.ephemeral.load(session_token), self.catalog)

        try:
            durable_lines = await hydrate_lines(await self.durable.load(user_id), self.catalog)
        except Exception as e:
            # Fail open: empty cart now, guest lines stay for the next attempt
            logger.error(f"Cart merge for user {safe_user} could not load the durable cart: {e}", exc_info=True)
            return MergeOutcome(lines=[], completed=False)

        if not guest_lines:
            return MergeOutcome(lines=durable_lines, completed=True)

        result = merge_lines(guest_lines, durable_lines)
        for anomaly in result.anomalies:
            logger.warning(
                f"Cart merge for user {safe_user}: duplicate {anomaly.source} key {tuple(anomaly.key)} "
                f"with quantities {anomaly.quantities}, combined"
            )

        try:
            await self.durable.replace(user_id, [line.to_payload() for line in result.lines])
        except PersistenceError as e:
            logger.error(f"Cart merge for user {safe_user} could not save the merged cart: {e}", exc_info=True)
            return MergeOutcome(lines=durable_lines, completed=False, anomalies=result.anomalies)

        try:
            await self.ephemeral.clear(session_token)
        except PersistenceError as e:
            logger.warning(f"Cart merge for user {safe_user} could not clear the guest cart: {e}")

        logger.info(
            f"Merged {len(guest_lines)} guest lines into cart of user {safe_user} "
            f"({len(result.lines)} lines total)"
        )
        return MergeOutcome(lines=result.lines, completed=True, anomalies=result.anomalies)
