from __future__ import annotations

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class InventoryRepository(BaseRepository):
    table = "inventory"
    bool_columns = ("is_third_party_rental",)

    def unit_exists(self, db, purchase_order_line_item_id: str, unit_index: int) -> bool:
        row = db.execute(
            """
            SELECT 1 AS found
            FROM inventory
            WHERE purchase_order_line_item_id = ? AND unit_index = ?
            LIMIT 1
            """,
            (purchase_order_line_item_id, int(unit_index)),
        ).fetchone()
        return row is not None

    def list_for_purchase_order(self, db, purchase_order_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM inventory
            WHERE purchase_order_id = ?
            ORDER BY purchase_order_line_item_id ASC, unit_index ASC
            """,
            (purchase_order_id,),
        ).fetchall()
        return self.decode_rows(rows)
