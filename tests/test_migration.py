from __future__ import annotations

import sqlite3
import unittest
from dataclasses import dataclass
from typing import Optional

from assoc_orm.core.context import OrmContext
from assoc_orm.core.migration import (
    MigrationPlanner,
    MigrationState,
    create_join_table_sql,
    create_table_sql,
    creation_order,
    foreign_key_references,
)
from assoc_orm.core.schema import (
    EntityDefinition,
    FieldDef,
    SchemaRegistry,
    column,
    primary_key,
)
from assoc_orm.demo.models import DEMO_ENTITIES, NOTE, USER
from assoc_orm.errors import MigrationError, UnknownEntityError
from assoc_orm.ports.db_api.database import Database
from assoc_orm.ports.db_api.dialects import PostgresDialect, SQLiteDialect


@dataclass
class Tag:
    id: Optional[int] = None
    label: str = ""
    color: Optional[str] = None


def _tag_definition(*fields: FieldDef) -> EntityDefinition:
    return EntityDefinition("Tag", Tag, fields=(primary_key(), column("label"), *fields))


class MigrationPlannerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.conn = sqlite3.connect(":memory:")
        self.conn.execute("PRAGMA foreign_keys = ON;")
        self.db = Database(self.conn, SQLiteDialect())

    def tearDown(self) -> None:
        self.conn.close()

    def _tables(self) -> set[str]:
        rows = self.conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table';"
        ).fetchall()
        return {row[0] for row in rows}

    def test_migrate_creates_tables_indexes_and_join_table(self) -> None:
        planner = MigrationPlanner(self.db, SchemaRegistry(DEMO_ENTITIES))
        self.assertEqual(planner.state, MigrationState.UNMIGRATED)

        with self.assertLogs("assoc_orm.core.migration", level="INFO") as logs:
            statements = planner.migrate()

        self.assertTrue(planner.migrated)
        self.assertTrue(statements)
        self.assertEqual(len(logs.records), len(statements))
        self.assertTrue(
            {
                "users",
                "notes",
                "credit_cards",
                "movies",
                "actors",
                "consumers",
                "orders",
                "filmography",
            }
            <= self._tables()
        )
        indexes = {
            row[1] for row in self.conn.execute("PRAGMA index_list(\"notes\");").fetchall()
        }
        self.assertIn("idx_notes_user_id", indexes)
        self.assertIn("idx_notes_deleted_at", indexes)

    def test_migration_is_idempotent(self) -> None:
        registry = SchemaRegistry(DEMO_ENTITIES)
        first = MigrationPlanner(self.db, registry)
        self.assertTrue(first.migrate())
        self.assertEqual(first.migrate(), [])

        fresh = MigrationPlanner(self.db, registry)
        self.assertEqual(fresh.plan(), [])
        self.assertEqual(fresh.migrate(), [])
        self.assertTrue(fresh.migrated)

    def test_plan_rejects_relation_to_unregistered_entity(self) -> None:
        planner = MigrationPlanner(self.db, SchemaRegistry([NOTE]))
        with self.assertRaises(UnknownEntityError):
            planner.plan()
        with self.assertRaises(UnknownEntityError):
            planner.migrate()
        self.assertEqual(self._tables(), set())

    def test_migrating_a_subset_keeps_state_unmigrated(self) -> None:
        planner = MigrationPlanner(self.db, SchemaRegistry(DEMO_ENTITIES))
        planner.migrate([USER])
        self.assertEqual(planner.state, MigrationState.UNMIGRATED)
        self.assertIn("users", self._tables())
        self.assertNotIn("notes", self._tables())

    def test_adds_missing_nullable_column_and_keeps_rows(self) -> None:
        self.conn.execute(
            'CREATE TABLE "tags" ("id" INTEGER PRIMARY KEY AUTOINCREMENT, "label" TEXT NULL);'
        )
        self.conn.execute("INSERT INTO \"tags\" (\"label\") VALUES ('keep');")

        planner = MigrationPlanner(self.db, SchemaRegistry([_tag_definition(column("color"))]))
        statements = planner.migrate()

        self.assertEqual(statements, ['ALTER TABLE "tags" ADD COLUMN "color" TEXT NULL;'])
        rows = self.conn.execute('SELECT "label", "color" FROM "tags";').fetchall()
        self.assertEqual(rows, [("keep", None)])

    def test_missing_not_null_column_aborts(self) -> None:
        self.conn.execute('CREATE TABLE "tags" ("id" INTEGER PRIMARY KEY, "label" TEXT NULL);')
        planner = MigrationPlanner(
            self.db,
            SchemaRegistry([_tag_definition(column("color", nullable=False))]),
        )
        with self.assertRaises(MigrationError):
            planner.migrate()
        self.assertFalse(planner.migrated)

    def test_type_mismatch_is_logged_and_left_alone(self) -> None:
        self.conn.execute(
            'CREATE TABLE "tags" ("id" INTEGER PRIMARY KEY, "label" INTEGER NULL);'
        )
        planner = MigrationPlanner(self.db, SchemaRegistry([_tag_definition()]))
        with self.assertLogs("assoc_orm.core.migration", level="WARNING") as logs:
            self.assertEqual(planner.migrate(), [])
        self.assertIn("tags.label", logs.output[0])

    def test_backend_failure_becomes_migration_error(self) -> None:
        planner = MigrationPlanner(self.db, SchemaRegistry(DEMO_ENTITIES))
        self.db.close()
        with self.assertRaises(MigrationError) as ctx:
            planner.migrate()
        self.assertIsNotNone(ctx.exception.__cause__)

    def test_context_migrate_uses_planner(self) -> None:
        ctx = OrmContext(self.db, DEMO_ENTITIES)
        self.assertTrue(ctx.migrate())
        self.assertTrue(ctx.planner.migrated)
        self.assertEqual(ctx.migrate(), [])


class MigrationSqlTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = SchemaRegistry(DEMO_ENTITIES)
        self.references = foreign_key_references(self.registry)

    def test_foreign_key_references(self) -> None:
        self.assertEqual(self.references["notes"]["user_id"], ("users", "id"))
        self.assertEqual(self.references["credit_cards"]["user_id"], ("users", "id"))
        self.assertEqual(self.references["orders"]["consumer_id"], ("consumers", "id"))

    def test_creation_order_puts_referenced_tables_first(self) -> None:
        ordered = [item.table_name for item in creation_order(DEMO_ENTITIES, self.references)]
        self.assertLess(ordered.index("users"), ordered.index("notes"))
        self.assertLess(ordered.index("users"), ordered.index("credit_cards"))
        self.assertLess(ordered.index("consumers"), ordered.index("orders"))

    def test_create_table_sql(self) -> None:
        sql = create_table_sql(NOTE, SQLiteDialect(), self.references["notes"])
        self.assertTrue(sql.startswith('CREATE TABLE IF NOT EXISTS "notes" ('))
        self.assertIn('"id" INTEGER PRIMARY KEY AUTOINCREMENT', sql)
        self.assertIn('"name" VARCHAR(255) NULL', sql)
        self.assertIn('"content" TEXT NULL', sql)
        self.assertIn('"user_id" INTEGER NULL REFERENCES "users" ("id")', sql)
        self.assertIn('"deleted_at" TIMESTAMP NULL', sql)

        pg_sql = create_table_sql(USER, PostgresDialect())
        self.assertIn('"id" BIGSERIAL PRIMARY KEY', pg_sql)

    def test_create_join_table_sql(self) -> None:
        join = self.registry.join_tables()[0]
        sql = create_join_table_sql(join, SQLiteDialect())
        self.assertIn('REFERENCES "movies" ("id") ON DELETE CASCADE', sql)
        self.assertIn('REFERENCES "actors" ("id") ON DELETE CASCADE', sql)
        self.assertIn("PRIMARY KEY (", sql)


if __name__ == "__main__":
    unittest.main()
