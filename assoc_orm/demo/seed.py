"""Seed data for the demo schema."""

from __future__ import annotations

import logging
from datetime import datetime

from ..core.context import OrmContext
from ..core.query import Query
from .models import Actor, Consumer, CreditCard, Movie, Note, Order, User

logger = logging.getLogger(__name__)

FILMOGRAPHY = {
    "Iron Man": ["Robert Downey Jr."],
    "Avengers": ["Robert Downey Jr.", "Chris Evans", "Scarlett Johansson"],
    "Avengers Infinity War": [
        "Robert Downey Jr.",
        "Chris Evans",
        "Scarlett Johansson",
        "Chadwick Boseman",
    ],
    "Sherlock Holmes": ["Robert Downey Jr."],
    "Lost in Translation": ["Scarlett Johansson"],
    "Marriage Story": ["Scarlett Johansson"],
}


def is_seeded(ctx: OrmContext) -> bool:
    return ctx.count(Query("User")) > 0


def seed(ctx: OrmContext) -> bool:
    """Insert the demo rows once.

    Returns:
        `False` when the database already holds users and nothing was written.
    """

    if is_seeded(ctx):
        logger.info("Demo data already present, skipping seed.")
        return False

    with ctx.transaction():
        seed_users(ctx)
        seed_movies(ctx)
        seed_orders(ctx)
    logger.info("Demo data seeded.")
    return True


def seed_users(ctx: OrmContext) -> None:
    alex = ctx.insert(User(username="Alex", password="secret"))
    kate = ctx.insert(User(username="Kate", password="hunter2"))
    ctx.insert_many(
        [
            Note(name="Shopping", content="Milk, bread, coffee", user_id=alex.id),
            Note(name="Work", content="Finish the quarterly report", user_id=alex.id),
            Note(name="Travel", content="Book tickets to Lisbon", user_id=kate.id),
        ]
    )
    ctx.insert(CreditCard(number="4111 1111 1111 1111", user_id=alex.id))


def seed_movies(ctx: OrmContext) -> None:
    actors: dict[str, Actor] = {}
    for names in FILMOGRAPHY.values():
        for name in names:
            if name not in actors:
                actors[name] = ctx.insert(Actor(name=name))

    for title, names in FILMOGRAPHY.items():
        movie = ctx.insert(Movie(name=title))
        ctx.link(movie, "Actors", [actors[name] for name in names])


def seed_orders(ctx: OrmContext) -> None:
    john = ctx.insert(Consumer(name="John", email="john@example.com"))
    maria = ctx.insert(Consumer(name="Maria", email="maria@example.org"))
    ivan = ctx.insert(Consumer(name="Ivan", email="ivan@shop.com"))
    ctx.insert_many(
        [
            Order(
                consumer_id=john.id,
                order_time=datetime(2023, 5, 1, 10, 30),
                payment_mode="Card",
                price=50,
            ),
            Order(
                consumer_id=john.id,
                order_time=datetime(2023, 5, 2, 12, 0),
                payment_mode="Cash",
                price=10,
            ),
            Order(
                consumer_id=john.id,
                order_time=datetime(2023, 5, 3, 18, 15),
                payment_mode="Card",
                price=20,
            ),
            Order(
                consumer_id=maria.id,
                order_time=datetime(2023, 5, 4, 9, 45),
                payment_mode="Card",
                price=75,
            ),
            Order(
                consumer_id=ivan.id,
                order_time=datetime(2023, 5, 5, 16, 20),
                payment_mode="Cash",
                price=40,
            ),
        ]
    )
