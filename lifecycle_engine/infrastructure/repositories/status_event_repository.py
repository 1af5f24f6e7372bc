from __future__ import annotations

from lifecycle_engine.domain.timestamps import new_id, utc_now_iso
from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class StatusEventRepository(BaseRepository):
    table = "status_events"

    def add_event(
        self,
        db,
        *,
        entity: str,
        entity_id: str,
        from_status: str | None,
        to_status: str | None,
        reason: str | None,
        actor_id: str | None = None,
        occurred_at: str | None = None,
    ) -> str:
        event_id = new_id()
        db.execute(
            """
            INSERT INTO status_events (id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (event_id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at or utc_now_iso()),
        )
        return event_id

    def list_for_entity(self, db, *, entity: str, entity_id: str, limit: int = 120) -> list[dict]:
        rows = db.execute(
            """
            SELECT id, entity, entity_id, from_status, to_status, reason, actor_id, occurred_at
            FROM status_events
            WHERE entity = ? AND entity_id = ?
            ORDER BY occurred_at DESC, id DESC
            LIMIT ?
            """,
            (entity, entity_id, int(limit)),
        ).fetchall()
        return self.rows_to_dicts(rows)
