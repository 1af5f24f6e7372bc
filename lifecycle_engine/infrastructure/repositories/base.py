from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Mapping


class BaseRepository:
    """Row access for one table.

    Every method takes the request ``Database`` as its first argument so the
    caller decides the transaction boundary. JSON and boolean columns are
    encoded on write and decoded on read; everything else passes through.
    """

    table: str = ""
    json_columns: tuple[str, ...] = ()
    bool_columns: tuple[str, ...] = ()

    def get(self, db, record_id: str | None, *, for_update: bool = False) -> dict | None:
        if not record_id:
            return None
        sql = f"SELECT * FROM {self.table} WHERE id = ?"
        if for_update:
            sql += db.lock_clause()
        row = db.execute(sql, (record_id,)).fetchone()
        return self.decode_row(row) if row else None

    def insert(self, db, record: Mapping[str, Any]) -> dict:
        columns = list(record)
        placeholders = ", ".join("?" for _ in columns)
        db.execute(
            f"INSERT INTO {self.table} ({', '.join(columns)}) VALUES ({placeholders})",
            [self.encode_value(column, record[column]) for column in columns],
        )
        return dict(record)

    def update_fields(
        self,
        db,
        record_id: str,
        fields: Mapping[str, Any],
        *,
        expected_status: str | None = None,
    ) -> int:
        """Apply ``fields`` to one row and return the affected row count.

        With ``expected_status`` the update only lands while the row still has
        that status, so a zero count means another writer got there first.
        """
        if not fields:
            return 0
        assignments = ", ".join(f"{column} = ?" for column in fields)
        params = [self.encode_value(column, value) for column, value in fields.items()]
        sql = f"UPDATE {self.table} SET {assignments} WHERE id = ?"
        params.append(record_id)
        if expected_status is not None:
            sql += " AND status = ?"
            params.append(expected_status)
        cursor = db.execute(sql, params)
        return int(cursor.rowcount or 0)

    def encode_value(self, column: str, value: Any) -> Any:
        if column in self.json_columns:
            return json.dumps(value if value is not None else [])
        if column in self.bool_columns:
            return 1 if value else 0
        return value

    def decode_row(self, row: Any) -> dict:
        record: Dict[str, Any] = dict(row)
        for column in self.json_columns:
            raw = record.get(column)
            if isinstance(raw, str):
                record[column] = json.loads(raw) if raw else []
        for column in self.bool_columns:
            if column in record:
                record[column] = bool(record[column])
        return record

    def decode_rows(self, rows: Iterable[Any]) -> list[dict]:
        return [self.decode_row(row) for row in rows]

    @staticmethod
    def rows_to_dicts(rows: Iterable[Any]) -> list[dict]:
        return [dict(row) for row in rows]
