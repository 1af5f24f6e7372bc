from __future__ import annotations

from lifecycle_engine.domain.timestamps import utc_now_iso
from lifecycle_engine.infrastructure.repositories.base import BaseRepository


class ContactRepository(BaseRepository):
    table = "contacts"

    def user_ids_for_contacts(self, db, contact_ids: list[str]) -> list[str]:
        if not contact_ids:
            return []
        placeholders = ", ".join("?" for _ in contact_ids)
        rows = db.execute(
            f"""
            SELECT user_id
            FROM contacts
            WHERE id IN ({placeholders}) AND user_id IS NOT NULL
            """,
            list(contact_ids),
        ).fetchall()
        return [str(dict(row)["user_id"]) for row in rows]


class WorkspaceMemberRepository(BaseRepository):
    table = "workspace_members"

    def get_role(self, db, workspace_id: str, user_id: str) -> str | None:
        row = db.execute(
            """
            SELECT role
            FROM workspace_members
            WHERE workspace_id = ? AND user_id = ?
            LIMIT 1
            """,
            (workspace_id, user_id),
        ).fetchone()
        return str(dict(row)["role"]) if row else None

    def add_member(self, db, *, workspace_id: str, user_id: str, role: str = "member") -> dict:
        record = {
            "workspace_id": workspace_id,
            "user_id": user_id,
            "role": role,
            "created_at": utc_now_iso(),
        }
        return self.insert(db, record)
