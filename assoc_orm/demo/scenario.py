"""Fixed query walkthrough over the demo schema."""

from __future__ import annotations

from ..core.conditions import C
from ..core.context import OrmContext
from ..core.contracts import ReportingSink
from ..core.query import Query
from ..core.scopes import Scope, field_ends_with, where
from ..errors import RecordNotFoundError
from ..reporting import (
    SEPARATOR,
    format_consumer,
    format_note,
    format_order,
    related_names,
)

card_orders = where("card_orders", C.eq("payment_mode", "Card"))
price_greater_than_30 = where("price_greater_than_30", C.gt("price", 30))


def users_from_domain(domain: str) -> Scope:
    """Consumers whose email ends with `domain` (e.g. ".com")."""

    return field_ends_with("email", domain)


def run_demo(ctx: OrmContext, sink: ReportingSink, *, domain: str = ".com") -> None:
    report_note_owner(ctx, sink)
    sink.emit(SEPARATOR)
    report_user(ctx, sink, "Alex")
    report_movie_cast(ctx, sink, "Avengers Infinity War")
    report_actor_movies(ctx, sink, "Robert Downey Jr.")
    report_card_orders(ctx, sink)
    report_domain_consumers(ctx, sink, domain)


def report_note_owner(ctx: OrmContext, sink: ReportingSink) -> None:
    note = ctx.first(Query("Note").preload("User"))
    user = note.one("User")
    sink.emit(f"User from a note: {user.obj.username if user else '<none>'}")


def report_user(ctx: OrmContext, sink: ReportingSink, username: str) -> None:
    user = ctx.first(
        Query("User")
        .preload("Notes")
        .preload("CreditCard")
        .where(C.eq("username", username))
    )
    sink.emit("Notes from a user:")
    for note in user.related_objects("Notes"):
        sink.emit(format_note(note))
    sink.emit(SEPARATOR)

    card = user.one("CreditCard")
    if card is None:
        sink.emit(f"{username} has no credit card.")
    else:
        sink.emit(f"Credit card from a user: {card.obj.number}")


def report_movie_cast(ctx: OrmContext, sink: ReportingSink, title: str) -> None:
    movie = ctx.first(Query("Movie").where(C.eq("name", title)).preload("Actors"))
    sink.emit("Actors:")
    for actor_name in related_names(movie, "Actors"):
        sink.emit(actor_name)


def report_actor_movies(ctx: OrmContext, sink: ReportingSink, name: str) -> None:
    try:
        actor = ctx.first(Query("Actor").where(C.eq("name", name)).preload("Movies"))
    except RecordNotFoundError:
        sink.emit(f"Actor {name} not found.")
        return
    sink.emit(f"Actor: {actor.obj.name}")
    sink.emit("Movies:")
    for title in related_names(actor, "Movies"):
        sink.emit(title)


def report_card_orders(ctx: OrmContext, sink: ReportingSink) -> None:
    orders = ctx.find(
        Query("Order").scopes(card_orders, price_greater_than_30).order_by("id")
    )
    sink.emit("orders:")
    for order in orders.objects():
        sink.emit(format_order(order))


def report_domain_consumers(ctx: OrmContext, sink: ReportingSink, domain: str) -> None:
    consumers = ctx.find(
        Query("Consumer")
        .scopes(users_from_domain(domain))
        .preload("Orders", card_orders)
        .order_by("id")
    )
    sink.emit(f"Consumers with domain {domain}:")
    for consumer in consumers.objects():
        sink.emit(format_consumer(consumer))

    if len(consumers):
        first = consumers[0]
        sink.emit(f"Orders of user {first.obj.name}:")
        for order in first.related_objects("Orders"):
            sink.emit(format_order(order))
