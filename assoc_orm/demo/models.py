"""Demo schema: users with notes and cards, movies and actors, consumers and orders."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..core.schema import (
    EntityDefinition,
    belongs_to,
    column,
    has_many,
    has_one,
    many_to_many,
    primary_key,
)


@dataclass
class Timestamped:
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass
class User(Timestamped):
    id: Optional[int] = None
    username: str = ""
    password: str = ""


@dataclass
class Note(Timestamped):
    id: Optional[int] = None
    name: str = ""
    content: str = ""
    user_id: Optional[int] = None


@dataclass
class CreditCard(Timestamped):
    id: Optional[int] = None
    number: str = ""
    user_id: Optional[int] = None


@dataclass
class Movie(Timestamped):
    id: Optional[int] = None
    name: str = ""


@dataclass
class Actor(Timestamped):
    id: Optional[int] = None
    name: str = ""


@dataclass
class Consumer(Timestamped):
    id: Optional[int] = None
    name: str = ""
    email: str = ""


@dataclass
class Order(Timestamped):
    id: Optional[int] = None
    consumer_id: Optional[int] = None
    order_time: Optional[datetime] = None
    payment_mode: str = ""
    price: int = 0


USER = EntityDefinition(
    "User",
    User,
    fields=(
        primary_key(),
        column("username", size=64),
        column("password", size=255),
    ),
    relations=(
        has_many("Notes", "Note"),
        has_one("CreditCard", "CreditCard"),
    ),
    soft_delete=True,
)

NOTE = EntityDefinition(
    "Note",
    Note,
    fields=(
        primary_key(),
        column("name", size=255),
        column("content", text=True),
        column("user_id", int, index=True),
    ),
    relations=(belongs_to("User", "User"),),
    soft_delete=True,
)

CREDIT_CARD = EntityDefinition(
    "CreditCard",
    CreditCard,
    fields=(
        primary_key(),
        column("number", size=50),
        column("user_id", int, index=True),
    ),
    soft_delete=True,
)

MOVIE = EntityDefinition(
    "Movie",
    Movie,
    fields=(primary_key(), column("name")),
    relations=(many_to_many("Actors", "Actor", join_table="filmography"),),
    soft_delete=True,
)

ACTOR = EntityDefinition(
    "Actor",
    Actor,
    fields=(primary_key(), column("name")),
    relations=(many_to_many("Movies", "Movie", join_table="filmography"),),
    soft_delete=True,
)

CONSUMER = EntityDefinition(
    "Consumer",
    Consumer,
    fields=(
        primary_key(),
        column("name", size=255),
        column("email", size=255),
    ),
    relations=(has_many("Orders", "Order"),),
    soft_delete=True,
)

ORDER = EntityDefinition(
    "Order",
    Order,
    fields=(
        primary_key(),
        column("consumer_id", int),
        column("order_time", datetime),
        column("payment_mode", size=255),
        column("price", int),
    ),
    relations=(belongs_to("Consumer", "Consumer"),),
    soft_delete=True,
)

DEMO_ENTITIES = (NOTE, USER, CREDIT_CARD, MOVIE, ACTOR, CONSUMER, ORDER)
