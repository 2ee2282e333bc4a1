"""Demo schema, seed data, and query walkthrough."""

from .models import DEMO_ENTITIES
from .scenario import card_orders, price_greater_than_30, run_demo, users_from_domain
from .seed import seed

__all__ = [
    "DEMO_ENTITIES",
    "card_orders",
    "price_greater_than_30",
    "run_demo",
    "seed",
    "users_from_domain",
]
