from __future__ import annotations

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class QuoteRepository(BaseRepository):
    table = "quotes"

    def list_quotes(
        self,
        db,
        *,
        rfq_id: str | None = None,
        workspace_id: str | None = None,
        status: str | None = None,
        limit: int = 120,
    ) -> list[dict]:
        clauses: list[str] = []
        params: list = []
        if rfq_id:
            clauses.append("rfq_id = ?")
            params.append(rfq_id)
        if workspace_id:
            clauses.append("(seller_workspace_id = ? OR buyer_workspace_id = ?)")
            params.extend([workspace_id, workspace_id])
        if status:
            clauses.append("status = ?")
            params.append(status)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = db.execute(
            f"""
            SELECT *
            FROM quotes
            {where}
            ORDER BY created_at ASC, id ASC
            LIMIT ?
            """,
            (*params, int(limit)),
        ).fetchall()
        return self.decode_rows(rows)

    def list_active_siblings(self, db, rfq_id: str, *, exclude_quote_id: str, for_update: bool = False) -> list[dict]:
        sql = """
            SELECT *
            FROM quotes
            WHERE rfq_id = ? AND status = 'ACTIVE' AND id <> ?
            ORDER BY created_at ASC, id ASC
        """
        if for_update:
            sql += db.lock_clause()
        return self.decode_rows(db.execute(sql, (rfq_id, exclude_quote_id)).fetchall())

    def has_active_for_rfq(self, db, rfq_id: str) -> bool:
        row = db.execute(
            """
            SELECT 1 AS found
            FROM quotes
            WHERE rfq_id = ? AND status = 'ACTIVE'
            LIMIT 1
            """,
            (rfq_id,),
        ).fetchone()
        return row is not None
