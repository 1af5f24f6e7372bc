from __future__ import annotations

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class RfqRepository(BaseRepository):
    table = "rfqs"
    json_columns = ("invited_seller_contact_ids", "line_items")

    def list_for_workspace(
        self,
        db,
        buyers_workspace_id: str,
        *,
        status: str | None = None,
        limit: int = 120,
    ) -> list[dict]:
        sql = """
            SELECT *
            FROM rfqs
            WHERE buyers_workspace_id = ?
        """
        params: list = [buyers_workspace_id]
        if status:
            sql += " AND status = ?"
            params.append(status)
        sql += " ORDER BY created_at DESC, id DESC LIMIT ?"
        params.append(int(limit))
        return self.decode_rows(db.execute(sql, params).fetchall())
