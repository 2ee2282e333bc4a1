"""Scope example: reusable predicates and preloads filtered by a scope."""

from __future__ import annotations

import sys
from pathlib import Path

# Allow running this script directly from repository root.
PROJECT_ROOT = next(
    (parent for parent in Path(__file__).resolve().parents if (parent / "assoc_orm").exists()),
    None,
)
if PROJECT_ROOT and str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from assoc_orm.config import Settings
from assoc_orm.core import Query, combine, open_context
from assoc_orm.demo import DEMO_ENTITIES, card_orders, price_greater_than_30, seed, users_from_domain
from assoc_orm.errors import InvalidPredicateError
from assoc_orm.reporting import format_order


def main() -> None:
    settings = Settings(database_path=Path(":memory:"))
    with open_context(settings, DEMO_ENTITIES) as ctx:
        seed(ctx)

        # Scopes are plain values: they compose in any order.
        print("predicate:", combine(card_orders, price_greater_than_30))
        print("serialized:", card_orders.to_dict())

        orders = ctx.find(Query("Order").scopes(price_greater_than_30, card_orders))
        for order in orders.objects():
            print("card > 30:", format_order(order))

        # The preload scope filters attached orders only, never the consumers.
        consumers = ctx.find(
            Query("Consumer")
            .scopes(users_from_domain(".com"))
            .preload("Orders", card_orders)
            .order_by("id")
        )
        for consumer in consumers:
            modes = [order.payment_mode for order in consumer.related_objects("Orders")]
            print(f"{consumer.obj.email}: {modes}")

        # Scopes are checked against the entity before any SQL runs.
        try:
            ctx.find(Query("Order").scopes(users_from_domain(".com")))
        except InvalidPredicateError as exc:
            print("rejected:", exc)


if __name__ == "__main__":
    main()
