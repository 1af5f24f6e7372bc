from __future__ import annotations

from typing import Any, Iterable, Mapping

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class OrderRepository(BaseRepository):
    """Order header plus its line item table.

    Sales and purchase orders share a shape; subclasses name the tables and
    the foreign key column of the line item table.
    """

    line_item_table: str = ""
    order_fk: str = ""

    def insert_line_items(self, db, order_id: str, line_items: Iterable[Mapping[str, Any]]) -> list[dict]:
        inserted: list[dict] = []
        for position, line_item in enumerate(line_items):
            record = {self.order_fk: order_id, "position": position, **line_item}
            columns = list(record)
            placeholders = ", ".join("?" for _ in columns)
            db.execute(
                f"INSERT INTO {self.line_item_table} ({', '.join(columns)}) VALUES ({placeholders})",
                [record[column] for column in columns],
            )
            inserted.append(record)
        return inserted

    def list_line_items(self, db, order_id: str) -> list[dict]:
        rows = db.execute(
            f"""
            SELECT *
            FROM {self.line_item_table}
            WHERE {self.order_fk} = ?
            ORDER BY position ASC
            """,
            (order_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)

    def get_with_line_items(self, db, order_id: str | None) -> dict | None:
        order = self.get(db, order_id)
        if not order:
            return None
        order["line_items"] = self.list_line_items(db, order["id"])
        return order

    def find_by_quote(self, db, quote_id: str) -> dict | None:
        row = db.execute(
            f"""
            SELECT *
            FROM {self.table}
            WHERE quote_id = ?
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (quote_id,),
        ).fetchone()
        return self.decode_row(row) if row else None


class SalesOrderRepository(OrderRepository):
    table = "sales_orders"
    line_item_table = "sales_order_line_items"
    order_fk = "sales_order_id"


class PurchaseOrderRepository(OrderRepository):
    table = "purchase_orders"
    line_item_table = "purchase_order_line_items"
    order_fk = "purchase_order_id"
