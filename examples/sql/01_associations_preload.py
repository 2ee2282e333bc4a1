"""Association example: one-to-one, one-to-many and many-to-many preloads."""

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

from assoc_orm.core import (
    C,
    EntityDefinition,
    OrmContext,
    Query,
    belongs_to,
    column,
    has_many,
    many_to_many,
    primary_key,
)
from assoc_orm.ports import Database, SQLiteDialect


@dataclass
class Author:
    id: Optional[int] = None
    name: str = ""


@dataclass
class Book:
    id: Optional[int] = None
    author_id: Optional[int] = None
    title: str = ""


@dataclass
class Genre:
    id: Optional[int] = None
    label: str = ""


ENTITIES = (
    EntityDefinition(
        "Author",
        Author,
        fields=(primary_key(), column("name")),
        relations=(has_many("Books", "Book"),),
    ),
    EntityDefinition(
        "Book",
        Book,
        fields=(primary_key(), column("author_id", int, index=True), column("title")),
        relations=(
            belongs_to("Author", "Author"),
            many_to_many("Genres", "Genre", join_table="book_genres"),
        ),
    ),
    EntityDefinition(
        "Genre",
        Genre,
        fields=(primary_key(), column("label", unique=True)),
        relations=(many_to_many("Books", "Book", join_table="book_genres"),),
    ),
)


def main() -> None:
    conn = sqlite3.connect(":memory:")
    conn.execute("PRAGMA foreign_keys = ON;")
    ctx = OrmContext(Database(conn, SQLiteDialect()), ENTITIES)

    try:
        for sql in ctx.migrate():
            print("DDL:", " ".join(sql.split()))

        tolkien = ctx.insert(Author(name="Tolkien"))
        pratchett = ctx.insert(Author(name="Pratchett"))
        hobbit = ctx.insert(Book(author_id=tolkien.id, title="The Hobbit"))
        rings = ctx.insert(Book(author_id=tolkien.id, title="The Lord of the Rings"))
        mort = ctx.insert(Book(author_id=pratchett.id, title="Mort"))
        fantasy, humor = ctx.insert_many([Genre(label="fantasy"), Genre(label="humor")])
        ctx.link(fantasy, "Books", [hobbit, rings, mort])
        ctx.link(mort, "Genres", [humor])

        # 1) has_many: every author with their books, two SELECTs in total.
        for author in ctx.find(Query("Author").order_by("id").preload("Books")):
            titles = [book.title for book in author.related_objects("Books")]
            print(f"{author.obj.name}: {titles}")

        # 2) belongs_to plus nested many_to_many through one dotted path.
        book = ctx.first(
            Query("Book").where(C.eq("title", "Mort")).preload("Author").preload("Genres")
        )
        owner = book.one("Author")
        print("Mort by", owner.obj.name if owner else "<unknown>")
        print("Mort genres:", [genre.label for genre in book.related_objects("Genres")])

        # 3) The inverse side of the join table.
        genre = ctx.first(Query("Genre").filter_by(label="fantasy").preload("Books.Author"))
        for item in genre.many("Books"):
            author = item.one("Author")
            print(f"fantasy: {item.obj.title} ({author.obj.name if author else '?'})")
    finally:
        conn.close()


if __name__ == "__main__":
    main()
