from __future__ import annotations

import itertools
import unittest

from assoc_orm.core.conditions import C, ConditionGroup, OrderBy
from assoc_orm.core.query import Query
from assoc_orm.core.schema import SchemaRegistry
from assoc_orm.core.scopes import (
    Scope,
    combine,
    field_ends_with,
    field_equals,
    field_greater_than,
    field_like,
    validate_predicate,
    where,
)
from assoc_orm.demo.models import DEMO_ENTITIES, ORDER, Consumer, Order
from assoc_orm.demo.scenario import card_orders, price_greater_than_30, users_from_domain
from assoc_orm.errors import InvalidPredicateError, RelationNotFoundError, UnknownEntityError
from tests.orm_test_helpers import make_context


class ScopeTests(unittest.TestCase):
    def test_factories_build_expected_conditions(self) -> None:
        self.assertEqual(field_equals("payment_mode", "Card").condition, C.eq("payment_mode", "Card"))
        self.assertEqual(field_greater_than("price", 30).condition, C.gt("price", 30))
        self.assertEqual(field_like("email", "a%").condition, C.like("email", "a%"))
        self.assertEqual(users_from_domain(".com").condition, C.like("email", "%.com"))
        self.assertEqual(field_ends_with("email", ".org").name, "email_ends_with")

    def test_ends_with_treats_wildcards_literally(self) -> None:
        scope = field_ends_with("email", "50%_off")
        self.assertEqual(scope.condition, C.like("email", "%50\\%\\_off", escape="\\"))
        self.assertIsNone(field_ends_with("email", ".com").condition.escape)
        self.assertEqual(Scope.from_dict(scope.to_dict()), scope)

    def test_apply_ands_onto_predicate(self) -> None:
        self.assertEqual(card_orders.apply(None), C.eq("payment_mode", "Card"))
        applied = price_greater_than_30(C.is_null("deleted_at"))
        self.assertIsInstance(applied, ConditionGroup)
        assert isinstance(applied, ConditionGroup)
        self.assertEqual(applied.items, (C.is_null("deleted_at"), C.gt("price", 30)))

    def test_combine_flattens_nested_iterables(self) -> None:
        predicate = combine([card_orders], price_greater_than_30, base=C.eq("consumer_id", 1))
        assert isinstance(predicate, ConditionGroup)
        self.assertEqual(len(predicate.items), 3)
        self.assertIsNone(combine())

    def test_scope_requires_expression(self) -> None:
        with self.assertRaises(TypeError):
            Scope("broken", "price > 30")  # type: ignore[arg-type]
        with self.assertRaises(ValueError):
            where("empty")

    def test_scope_dict_form(self) -> None:
        scope = where("cheap_card", C.eq("payment_mode", "Card"), C.le("price", 10))
        self.assertEqual(Scope.from_dict(scope.to_dict()), scope)
        self.assertEqual(scope.columns(), {"payment_mode", "price"})

    def test_validate_predicate(self) -> None:
        validate_predicate(ORDER, combine(card_orders, price_greater_than_30))
        with self.assertRaises(InvalidPredicateError):
            validate_predicate(ORDER, users_from_domain(".com").condition)


class ScopeCommutativityTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx, self.db, self.conn = make_context()
        self.ctx.insert_many(
            [
                Order(id=1, payment_mode="Card", price=50),
                Order(id=2, payment_mode="Cash", price=10),
                Order(id=3, payment_mode="Card", price=20),
            ]
        )

    def tearDown(self) -> None:
        self.conn.close()

    def test_card_orders_over_30(self) -> None:
        orders = self.ctx.find(Query(Order).scopes(card_orders, price_greater_than_30))
        self.assertEqual([order.id for order in orders.objects()], [1])

    def test_any_scope_order_gives_same_rows(self) -> None:
        scopes = [card_orders, price_greater_than_30, field_like("payment_mode", "C%")]
        expected = None
        for permutation in itertools.permutations(scopes):
            query = Query("Order").scopes(*permutation).order_by("id")
            ids = [order.id for order in self.ctx.find(query).objects()]
            if expected is None:
                expected = ids
            self.assertEqual(ids, expected)
        self.assertEqual(expected, [1])


class EndsWithScopeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx, self.db, self.conn = make_context()
        self.ctx.insert_many(
            [
                Consumer(id=1, name="Literal", email="sale@shop_com"),
                Consumer(id=2, name="Wildcard", email="sale@shopxcom"),
                Consumer(id=3, name="Percent", email="50%off"),
            ]
        )

    def tearDown(self) -> None:
        self.conn.close()

    def _names(self, suffix: str) -> list[str]:
        found = self.ctx.find(
            Query(Consumer).scopes(field_ends_with("email", suffix)).order_by("id")
        )
        return [consumer.name for consumer in found.objects()]

    def test_underscore_in_suffix_is_not_a_wildcard(self) -> None:
        self.assertEqual(self._names("_com"), ["Literal"])
        self.assertEqual(self._names("com"), ["Literal", "Wildcard"])

    def test_percent_in_suffix_is_not_a_wildcard(self) -> None:
        self.assertEqual(self._names("0%off"), ["Percent"])
        self.assertEqual(self._names("%com"), [])


class QueryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = SchemaRegistry(DEMO_ENTITIES)

    def test_builder_returns_new_values(self) -> None:
        base = Query("Order")
        scoped = base.scopes(card_orders)
        self.assertEqual(base.scope_list, ())
        self.assertEqual(scoped.scope_list, (card_orders,))
        self.assertIsNot(base, scoped)

    def test_predicate_combines_conditions_and_scopes(self) -> None:
        query = Query("Order").filter_by(consumer_id=1).scopes(card_orders)
        predicate = query.predicate()
        assert isinstance(predicate, ConditionGroup)
        self.assertEqual(predicate.items, (C.eq("consumer_id", 1), C.eq("payment_mode", "Card")))
        self.assertIsNone(Query("Order").predicate())

    def test_order_by_parses_descending_prefix(self) -> None:
        query = Query("Order").order_by("-price", OrderBy("id"))
        self.assertEqual(query.ordering, (OrderBy("price", desc=True), OrderBy("id")))
        with self.assertRaises(TypeError):
            Query("Order").order_by("")

    def test_paging_validation(self) -> None:
        self.assertEqual(Query("Order").limit(5).offset(10).offset_value, 10)
        with self.assertRaises(ValueError):
            Query("Order").limit(-1)
        with self.assertRaises(ValueError):
            Query("Order").offset(-1)

    def test_preload_tree_merges_paths(self) -> None:
        query = (
            Query("User")
            .preload("Notes")
            .preload("Notes.User", field_equals("username", "Alice"))
            .preload("CreditCard")
        )
        tree = query.preload_tree()
        self.assertEqual(list(tree), ["Notes", "CreditCard"])
        child = tree["Notes"].children["User"]
        self.assertEqual(child.scopes, [field_equals("username", "Alice")])
        with self.assertRaises(TypeError):
            Query("User").preload("Notes..User")

    def test_validate(self) -> None:
        self.assertEqual(Query(Order).validate(self.registry).name, "Order")
        with self.assertRaises(UnknownEntityError):
            Query("Invoice").validate(self.registry)
        with self.assertRaises(InvalidPredicateError):
            Query("Order").where(C.eq("total", 1)).validate(self.registry)
        with self.assertRaises(InvalidPredicateError):
            Query("Order").order_by("total").validate(self.registry)
        with self.assertRaises(RelationNotFoundError):
            Query("Order").preload("Items").validate(self.registry)
        with self.assertRaises(InvalidPredicateError):
            Query("Consumer").preload("Orders", users_from_domain(".com")).validate(
                self.registry
            )


if __name__ == "__main__":
    unittest.main()
