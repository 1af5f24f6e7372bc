from __future__ import annotations

import shutil
import tempfile
import uuid
from pathlib import Path
from typing import List

from lifecycle_engine.db import Database, connect_database, init_db


_REPO_ROOT = Path(__file__).resolve().parents[2]
_TEMP_ROOT = Path(tempfile.gettempdir()).resolve()


def assert_safe_temp_db_path(db_path: str) -> None:
    resolved = Path(db_path).resolve()
    if not resolved.is_relative_to(_TEMP_ROOT):
        raise ValueError(f"Temporary DB must live under TEMP: {resolved}")
    if resolved.is_relative_to(_REPO_ROOT):
        raise ValueError(f"Temporary DB cannot live inside repository: {resolved}")


class TempDbSandbox:
    """A throwaway SQLite file for one test case.

    Connections handed out by ``connect`` are lifecycle ``Database`` wrappers
    with the schema applied; ``cleanup`` closes any still open and removes the
    folder.
    """

    db_name = "lifecycle_engine_test.db"

    def __init__(self, prefix: str = "lifecycle_engine_tests") -> None:
        folder = _TEMP_ROOT / f"{prefix}_{uuid.uuid4().hex}"
        folder.mkdir(parents=True, exist_ok=False)
        self.temp_dir = str(folder)
        self.db_path = str(folder / self.db_name)
        assert_safe_temp_db_path(self.db_path)
        self._connections: List[Database] = []

    def connect(self) -> Database:
        db = connect_database(self.db_path)
        init_db(db)
        self._connections.append(db)
        return db

    def make_config(self, base_config, **overrides):
        attrs = {
            "DATABASE_DIR": self.temp_dir,
            "DB_PATH": self.db_path,
            "TESTING": True,
            "LOG_JSON": False,
        }
        attrs.update(overrides)
        return type("TempConfig", (base_config,), attrs)

    def cleanup(self) -> None:
        while self._connections:
            self._connections.pop().close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)
