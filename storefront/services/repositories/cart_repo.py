"""Cart Item Repository - durable cart rows per authenticated user."""
from typing import Any, Dict, List

from .base import BaseRepository

CART_ROW_COLUMNS = "product_id, variant_id, combo_id, quantity"


class CartItemRepository(BaseRepository):
    """`cart_items` table operations."""

    def __init__(self, client, table: str = "cart_items") -> None:
        super().__init__(client)
        self.table = table

    async def get_rows(self, user_id: str) -> List[Dict[str, Any]]:
        """Get all cart rows for a user."""
        result = await self.client.table(self.table).select(CART_ROW_COLUMNS).eq("user_id", user_id).execute()
        return result.data or []

    async def delete_all(self, user_id: str) -> None:
        """Delete every cart row of a user."""
        await self.client.table(self.table).delete().eq("user_id", user_id).execute()

    async def insert_rows(self, user_id: str, rows: List[Dict[str, Any]]) -> None:
        """Insert cart rows for a user."""
        if not rows:
            return
        await self.client.table(self.table).insert([
            {
                "user_id": user_id,
                "product_id": row["product_id"],
                "variant_id": row.get("variant_id"),
                "combo_id": row.get("combo_id"),
                "quantity": row["quantity"],
            }
            for row in rows
        ]).execute()
