"""Typer-based CLI for migrating, seeding, and running the demo walkthrough."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError

from .config import Settings
from .core.context import open_context
from .demo import DEMO_ENTITIES, run_demo, seed
from .errors import OrmError
from .reporting import ConsoleSink

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="assoc-orm",
    help="Association-aware ORM planner: migrate, seed, and query the demo schema.",
    no_args_is_help=True,
    add_completion=False,
)


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for CLI."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
    logging.getLogger().setLevel(level.upper())


def _fail(exc: Exception) -> typer.Exit:
    typer.secho(f"Error: {exc}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=1)


@app.callback()
def main_callback(
    ctx: typer.Context,
    database: Annotated[
        Optional[Path],
        typer.Option(
            "--database",
            "-d",
            help="SQLite database file (or ':memory:')",
        ),
    ] = None,
    log_level: Annotated[
        Optional[str],
        typer.Option("--log-level", "-l", help="DEBUG, INFO, WARNING, ERROR or CRITICAL"),
    ] = None,
    log_sql: Annotated[
        Optional[bool],
        typer.Option("--log-sql/--no-log-sql", help="Log every SQL statement at DEBUG"),
    ] = None,
) -> None:
    """Global options are processed before any command."""
    overrides: dict[str, object] = {}
    if database is not None:
        overrides["database_path"] = database
    if log_level is not None:
        overrides["log_level"] = log_level.upper()
    if log_sql is not None:
        overrides["log_sql"] = log_sql

    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        raise _fail(exc) from exc

    level = "DEBUG" if settings.log_sql else settings.log_level
    setup_logging(level)
    ctx.obj = settings


@app.command()
def migrate(ctx: typer.Context) -> None:
    """Create missing tables, columns, indexes and join tables."""
    settings: Settings = ctx.obj
    try:
        with open_context(settings, DEMO_ENTITIES, migrate=False) as orm:
            statements = orm.migrate()
    except OrmError as exc:
        raise _fail(exc) from exc
    typer.echo(f"Applied {len(statements)} statement(s) to {settings.database_path}.")


@app.command(name="seed")
def seed_command(ctx: typer.Context) -> None:
    """Insert the demo rows unless the database already has them."""
    settings: Settings = ctx.obj
    try:
        with open_context(settings, DEMO_ENTITIES) as orm:
            created = seed(orm)
    except OrmError as exc:
        raise _fail(exc) from exc
    typer.echo("Seeded demo data." if created else "Demo data already present.")


@app.command()
def demo(
    ctx: typer.Context,
    domain: Annotated[
        str, typer.Option("--domain", help="Email suffix for the consumer query")
    ] = ".com",
) -> None:
    """Migrate, seed if empty, and print the association walkthrough."""
    settings: Settings = ctx.obj
    try:
        with open_context(settings, DEMO_ENTITIES) as orm:
            seed(orm)
            run_demo(orm, ConsoleSink(), domain=domain)
    except OrmError as exc:
        raise _fail(exc) from exc


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
