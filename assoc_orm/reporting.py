"""Reporting sinks and line formatters for loaded records."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

import typer

from .core.records import LoadedRecord

logger = logging.getLogger(__name__)

SEPARATOR = "-----------------------------"


class ConsoleSink:
    """Writes each line to stdout through `typer.echo`."""

    def emit(self, line: str) -> None:
        typer.echo(line)


class MemorySink:
    """Collects lines in memory."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def emit(self, line: str) -> None:
        self.lines.append(line)

    def text(self) -> str:
        return "\n".join(self.lines)


class LoggingSink:
    """Forwards lines to a logger at INFO."""

    def __init__(self, target: Optional[logging.Logger] = None) -> None:
        self.logger = target or logger

    def emit(self, line: str) -> None:
        self.logger.info("%s", line)


def format_timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.isoformat(sep=" ", timespec="seconds")


def format_note(note: Any) -> str:
    return f"{note.name} - {note.content}"


def format_order(order: Any) -> str:
    return f"{format_timestamp(order.order_time)}: by {order.payment_mode},  {order.price} р."


def format_consumer(consumer: Any) -> str:
    return f"{consumer.name}: {consumer.email}"


def related_names(record: LoadedRecord[Any], relation: str) -> list[str]:
    """Names of the objects loaded under `relation`, in attachment order."""

    return [str(obj.name) for obj in record.related_objects(relation)]
