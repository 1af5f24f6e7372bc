import os
import tempfile
import unittest
from pathlib import Path

from lifecycle_engine.config import Config
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path


class TempDbHelperTest(unittest.TestCase):
    def test_connect_applies_schema_and_cleanup_removes_folder(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir
        self.assertTrue(Path(db_path).is_relative_to(Path(tempfile.gettempdir()).resolve()))

        db = sandbox.connect()
        row = db.execute("SELECT COUNT(*) AS total FROM quotes").fetchone()
        self.assertEqual(int(row["total"]), 0)
        self.assertTrue(os.path.exists(db_path))

        sandbox.cleanup()
        self.assertFalse(os.path.exists(temp_dir))

    def test_make_config_points_at_sandbox(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_config")
        try:
            config = sandbox.make_config(Config, LOG_LEVEL="DEBUG")
            self.assertTrue(issubclass(config, Config))
            self.assertEqual(config.DB_PATH, sandbox.db_path)
            self.assertTrue(config.TESTING)
            self.assertFalse(config.LOG_JSON)
            self.assertEqual(config.LOG_LEVEL, "DEBUG")
        finally:
            sandbox.cleanup()

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.getcwd(), "lifecycle_engine_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
