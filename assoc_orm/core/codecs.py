"""Field value codecs for DB serialization/deserialization."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any

from .conditions import Condition, ConditionGroup, NotCondition
from .schema import EntityDefinition, FieldDef
from .schema_columns import unwrap_optional
from .types import RowMapping


def serialize_value(field: FieldDef, value: Any, *, dialect_name: str = "sqlite") -> Any:
    """Serialize one field value for DB writes."""

    if value is None:
        return None

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value) if dialect_name == "sqlite" else value
    if isinstance(value, Decimal):
        return str(value) if dialect_name == "sqlite" else value
    if dialect_name == "sqlite" and isinstance(value, (datetime, date, time)):
        return value.isoformat(sep=" ") if isinstance(value, datetime) else value.isoformat()
    return value


def deserialize_value(field: FieldDef, value: Any) -> Any:
    """Deserialize one DB value into the field's Python type."""

    if value is None:
        return None

    base_type = unwrap_optional(field.type)
    if not isinstance(base_type, type):
        return value

    if issubclass(base_type, Enum):
        return value if isinstance(value, base_type) else base_type(value)
    if base_type is bool:
        return bool(value)
    if base_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if base_type is date and isinstance(value, str):
        return date.fromisoformat(value)
    if base_type is time and isinstance(value, str):
        return time.fromisoformat(value)
    if base_type is Decimal and not isinstance(value, Decimal):
        return Decimal(str(value))
    if base_type is bytes and isinstance(value, memoryview):
        return value.tobytes()
    return value


def row_to_model(definition: EntityDefinition, row: RowMapping) -> Any:
    """Map one DB row to an instance of the definition's model."""

    values = {
        field.name: deserialize_value(field, row[field.name])
        for field in definition.fields
        if field.name in row
    }
    return definition.model(**values)


def model_to_row(
    definition: EntityDefinition,
    obj: Any,
    *,
    dialect_name: str = "sqlite",
) -> dict[str, Any]:
    """Collect declared field values from a model instance."""

    return {
        field.name: serialize_value(
            field, getattr(obj, field.name), dialect_name=dialect_name
        )
        for field in definition.fields
    }


def serialize_expression(
    definition: EntityDefinition,
    expr: Any,
    *,
    dialect_name: str = "sqlite",
) -> Any:
    """Return a copy of a predicate tree with values encoded for the DB."""

    if isinstance(expr, Condition):
        if expr.is_unary or not definition.has_column(expr.col):
            return expr
        field = definition.field(expr.col)
        if expr.values is not None:
            encoded = tuple(
                serialize_value(field, item, dialect_name=dialect_name)
                for item in expr.values
            )
            return Condition(col=expr.col, op=expr.op, values=encoded)
        return Condition(
            col=expr.col,
            op=expr.op,
            value=serialize_value(field, expr.value, dialect_name=dialect_name),
        )
    if isinstance(expr, ConditionGroup):
        return ConditionGroup(
            operator=expr.operator,
            items=tuple(
                serialize_expression(definition, item, dialect_name=dialect_name)
                for item in expr.items
            ),
        )
    if isinstance(expr, NotCondition):
        return NotCondition(
            item=serialize_expression(definition, expr.item, dialect_name=dialect_name)
        )
    return expr
