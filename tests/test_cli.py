from __future__ import annotations

import logging
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from typer.testing import CliRunner

from assoc_orm.cli import app


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.runner = CliRunner()
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.db_path = Path(tmpdir.name) / "storage" / "storage.db"
        env = mock.patch.dict(
            os.environ, {"ASSOC_ORM_DATABASE_PATH": str(self.db_path)}, clear=False
        )
        env.start()
        self.addCleanup(env.stop)

        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        self.addCleanup(setattr, root, "handlers", handlers)
        self.addCleanup(root.setLevel, level)

    def test_migrate_is_idempotent(self) -> None:
        first = self.runner.invoke(app, ["migrate"])
        self.assertEqual(first.exit_code, 0, first.output)
        self.assertTrue(self.db_path.exists())
        self.assertNotIn("Applied 0 statement(s)", first.output)

        second = self.runner.invoke(app, ["migrate"])
        self.assertEqual(second.exit_code, 0, second.output)
        self.assertIn("Applied 0 statement(s)", second.output)

    def test_seed_then_seed_again(self) -> None:
        first = self.runner.invoke(app, ["seed"])
        self.assertEqual(first.exit_code, 0, first.output)
        self.assertIn("Seeded demo data.", first.output)

        second = self.runner.invoke(app, ["seed"])
        self.assertIn("Demo data already present.", second.output)

    def test_demo_prints_walkthrough(self) -> None:
        result = self.runner.invoke(app, ["--database", str(self.db_path), "demo"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("User from a note: Alex", result.output)
        self.assertIn("Consumers with domain .com:", result.output)
        self.assertIn("Ivan: ivan@shop.com", result.output)

    def test_demo_with_in_memory_database_and_domain(self) -> None:
        result = self.runner.invoke(app, ["--database", ":memory:", "demo", "--domain", ".org"])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Maria: maria@example.org", result.output)
        self.assertFalse(self.db_path.exists())

    def test_invalid_log_level_exits_with_error(self) -> None:
        result = self.runner.invoke(app, ["--log-level", "loud", "migrate"])
        self.assertEqual(result.exit_code, 1)

    def test_orm_errors_exit_with_code_one(self) -> None:
        self.db_path.parent.mkdir(parents=True)
        self.db_path.mkdir()
        result = self.runner.invoke(app, ["migrate"])
        self.assertEqual(result.exit_code, 1)


if __name__ == "__main__":
    unittest.main()
