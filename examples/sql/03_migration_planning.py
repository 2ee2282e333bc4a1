"""Migration example: plan, apply, and extend a schema additively."""

from __future__ import annotations

import sqlite3
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Allow running this script directly from repository root.
PROJECT_ROOT = next(
    (parent for parent in Path(__file__).resolve().parents if (parent / "assoc_orm").exists()),
    None,
)
if PROJECT_ROOT and str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from assoc_orm.core import EntityDefinition, MigrationPlanner, SchemaRegistry, column, primary_key
from assoc_orm.errors import MigrationError
from assoc_orm.ports import Database, SQLiteDialect


@dataclass
class Customer:
    id: Optional[int] = None
    name: str = ""
    phone: Optional[str] = None
    tier: Optional[int] = None


V1 = EntityDefinition("Customer", Customer, fields=(primary_key(), column("name", size=100)))
V2 = EntityDefinition(
    "Customer",
    Customer,
    fields=(primary_key(), column("name", size=100), column("phone", index=True)),
)
V3 = EntityDefinition(
    "Customer",
    Customer,
    fields=(
        primary_key(),
        column("name", size=100),
        column("phone", index=True),
        column("tier", int, nullable=False),
    ),
)


def main() -> None:
    conn = sqlite3.connect(":memory:")
    db = Database(conn, SQLiteDialect())
    try:
        planner = MigrationPlanner(db, SchemaRegistry([V1]))
        print("v1 plan:", planner.plan())
        planner.migrate()
        print("v1 again:", MigrationPlanner(db, SchemaRegistry([V1])).plan())

        # New nullable column and index are added in place.
        print("v2 applied:", MigrationPlanner(db, SchemaRegistry([V2])).migrate())

        # A NOT NULL column cannot be added to existing rows.
        try:
            MigrationPlanner(db, SchemaRegistry([V3])).migrate()
        except MigrationError as exc:
            print("v3 refused:", exc)
    finally:
        conn.close()


if __name__ == "__main__":
    main()
