from __future__ import annotations

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class QuoteRevisionRepository(BaseRepository):
    table = "quote_revisions"
    json_columns = ("line_items",)
    bool_columns = ("has_unpriced_line_items",)

    def list_for_quote(self, db, quote_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM quote_revisions
            WHERE quote_id = ?
            ORDER BY revision_number ASC
            """,
            (quote_id,),
        ).fetchall()
        return self.decode_rows(rows)

    def max_revision_number(self, db, quote_id: str) -> int:
        row = db.execute(
            """
            SELECT MAX(revision_number) AS max_revision
            FROM quote_revisions
            WHERE quote_id = ?
            """,
            (quote_id,),
        ).fetchone()
        if not row:
            return 0
        value = dict(row).get("max_revision")
        return int(value or 0)
