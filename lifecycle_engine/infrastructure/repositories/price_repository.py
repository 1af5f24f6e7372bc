from __future__ import annotations

from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class PriceRepository(BaseRepository):
    table = "prices"

    def list_for_workspace(self, db, workspace_id: str) -> list[dict]:
        rows = db.execute(
            """
            SELECT *
            FROM prices
            WHERE workspace_id = ?
            ORDER BY name ASC, id ASC
            """,
            (workspace_id,),
        ).fetchall()
        return self.rows_to_dicts(rows)
