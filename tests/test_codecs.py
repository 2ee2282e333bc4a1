from __future__ import annotations

import unittest
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from assoc_orm.core.codecs import (
    deserialize_value,
    model_to_row,
    row_to_model,
    serialize_expression,
    serialize_value,
)
from assoc_orm.core.conditions import C
from assoc_orm.core.schema import EntityDefinition, FieldDef, column, primary_key
from assoc_orm.core.schema_columns import resolve_sql_type
from assoc_orm.demo.models import ORDER


class PaymentMode(Enum):
    CARD = "Card"
    CASH = "Cash"


@dataclass
class Invoice:
    id: Optional[int] = None
    mode: Optional[PaymentMode] = None
    paid: bool = False
    total: Optional[Decimal] = None
    due: Optional[date] = None


INVOICE = EntityDefinition(
    "Invoice",
    Invoice,
    fields=(
        primary_key(),
        column("mode", PaymentMode),
        column("paid", bool),
        column("total", Decimal),
        column("due", date),
    ),
)


class CodecTests(unittest.TestCase):
    def test_sqlite_encodes_rich_values(self) -> None:
        invoice = Invoice(
            id=1,
            mode=PaymentMode.CARD,
            paid=True,
            total=Decimal("12.50"),
            due=date(2023, 5, 1),
        )
        row = model_to_row(INVOICE, invoice)
        self.assertEqual(
            row,
            {"id": 1, "mode": "Card", "paid": 1, "total": "12.50", "due": "2023-05-01"},
        )
        self.assertEqual(row_to_model(INVOICE, row), invoice)

    def test_postgres_keeps_native_values(self) -> None:
        field = FieldDef("paid", bool)
        self.assertIs(serialize_value(field, True, dialect_name="postgres"), True)
        when = datetime(2023, 5, 1, 10, 30)
        self.assertIs(
            serialize_value(FieldDef("at", datetime), when, dialect_name="postgres"), when
        )

    def test_deserialize_none_and_datetime(self) -> None:
        self.assertIsNone(deserialize_value(FieldDef("at", datetime), None))
        self.assertEqual(
            deserialize_value(FieldDef("at", datetime), "2023-05-01 10:30:00"),
            datetime(2023, 5, 1, 10, 30),
        )

    def test_serialize_expression_encodes_condition_values(self) -> None:
        expr = C.and_(
            C.gt("order_time", datetime(2023, 1, 1)),
            C.not_(C.in_("price", [10, 20])),
            C.is_null("deleted_at"),
        )
        encoded = serialize_expression(ORDER, expr)
        self.assertEqual(encoded.items[0], C.gt("order_time", "2023-01-01 00:00:00"))
        self.assertEqual(encoded.items[1], C.not_(C.in_("price", [10, 20])))
        self.assertEqual(encoded.items[2], C.is_null("deleted_at"))

    def test_resolve_sql_type(self) -> None:
        samples = [
            (column("mode", PaymentMode), "TEXT"),
            (column("paid", bool), "BOOLEAN"),
            (column("total", Decimal), "NUMERIC"),
            (column("due", date), "DATE"),
            (column("price", Optional[int]), "INTEGER"),
            (column("payment_mode", size=255), "VARCHAR(255)"),
            (column("content", size=255, text=True), "TEXT"),
            (primary_key("code", int, auto=False), "BIGINT"),
        ]
        for field, expected in samples:
            with self.subTest(field=field.name):
                self.assertEqual(resolve_sql_type(field), expected)


if __name__ == "__main__":
    unittest.main()
