from __future__ import annotations

import unittest
from dataclasses import dataclass
from typing import Optional

from assoc_orm.core.schema import (
    EntityDefinition,
    FieldDef,
    RelationKind,
    SchemaRegistry,
    belongs_to,
    column,
    default_table_name,
    has_many,
    many_to_many,
    primary_key,
    snake_case,
)
from assoc_orm.demo.models import DEMO_ENTITIES, MOVIE, NOTE, USER, Note, User
from assoc_orm.errors import (
    DuplicateEntityError,
    InvalidPredicateError,
    RelationNotFoundError,
    UnknownEntityError,
)


@dataclass
class Tag:
    id: Optional[int] = None
    label: str = ""


@dataclass
class Post:
    id: Optional[int] = None
    title: str = ""


class EntityDefinitionTests(unittest.TestCase):
    def test_naming_defaults(self) -> None:
        self.assertEqual(snake_case("CreditCard"), "credit_card")
        self.assertEqual(default_table_name("CreditCard"), "credit_cards")
        self.assertEqual(default_table_name("Category"), "categories")
        self.assertEqual(default_table_name("Box"), "boxes")
        self.assertEqual(USER.table_name, "users")

    def test_soft_delete_adds_timestamp_columns(self) -> None:
        self.assertEqual(
            NOTE.columns,
            ["id", "name", "content", "user_id", "created_at", "updated_at", "deleted_at"],
        )
        self.assertTrue(NOTE.field("deleted_at").index)

    def test_relation_defaults(self) -> None:
        notes = USER.relation("Notes")
        self.assertEqual(notes.kind, RelationKind.HAS_MANY)
        self.assertEqual(notes.foreign_key, "user_id")
        self.assertEqual(notes.owner_key, "id")
        self.assertTrue(notes.many)

        owner = NOTE.relation("User")
        self.assertEqual(owner.foreign_key, "user_id")
        self.assertFalse(owner.many)

        actors = MOVIE.relation("Actors")
        self.assertEqual(actors.join_table, "filmography")
        self.assertEqual(actors.join_owner_column, "movie_id")
        self.assertEqual(actors.join_target_column, "actor_id")

    def test_unknown_relation_and_column(self) -> None:
        with self.assertRaises(RelationNotFoundError) as ctx:
            USER.relation("Posts")
        self.assertIn("CreditCard", str(ctx.exception))
        with self.assertRaises(InvalidPredicateError):
            USER.field("email")

    def test_field_validation(self) -> None:
        with self.assertRaises(ValueError):
            FieldDef("id", int, auto=True)
        with self.assertRaises(ValueError):
            FieldDef("name", str, size=0)
        self.assertFalse(primary_key().is_nullable)
        self.assertTrue(column("label").is_nullable)

    def test_definition_validation(self) -> None:
        with self.assertRaises(ValueError):
            EntityDefinition("Tag", Tag, fields=(column("label"),))
        with self.assertRaises(ValueError):
            EntityDefinition("Tag", Tag, fields=(primary_key(), column("missing")))
        with self.assertRaises(ValueError):
            EntityDefinition(
                "Tag",
                Tag,
                fields=(primary_key(), column("label")),
                relations=(belongs_to("Post", "Post"),),
            )
        with self.assertRaises(TypeError):
            EntityDefinition("Tag", dict, fields=(primary_key(),))


class SchemaRegistryTests(unittest.TestCase):
    def test_register_and_resolve_by_name_or_model(self) -> None:
        registry = SchemaRegistry(DEMO_ENTITIES)
        self.assertEqual(len(registry), len(DEMO_ENTITIES))
        self.assertIs(registry.resolve("User"), USER)
        self.assertIs(registry.resolve(Note), NOTE)
        self.assertIn("Movie", registry)
        self.assertIn(User, registry)
        self.assertNotIn("Post", registry)

    def test_unknown_entity(self) -> None:
        registry = SchemaRegistry([USER])
        with self.assertRaises(UnknownEntityError) as ctx:
            registry.resolve("Post")
        self.assertIn("User", str(ctx.exception))
        with self.assertRaises(UnknownEntityError):
            registry.resolve(Post)

    def test_duplicate_entity(self) -> None:
        registry = SchemaRegistry([USER])
        with self.assertRaises(DuplicateEntityError):
            registry.register(USER)
        with self.assertRaises(DuplicateEntityError):
            registry.register(
                EntityDefinition("Member", User, fields=(primary_key(), column("username")))
            )

    def test_validate_reports_unregistered_targets(self) -> None:
        registry = SchemaRegistry([USER])
        with self.assertRaises(UnknownEntityError):
            registry.validate()
        SchemaRegistry(DEMO_ENTITIES).validate()

    def test_join_tables_merge_symmetric_declarations(self) -> None:
        joins = SchemaRegistry(DEMO_ENTITIES).join_tables()
        self.assertEqual([join.name for join in joins], ["filmography"])
        join = joins[0]
        self.assertEqual(set(join.columns), {"movie_id", "actor_id"})
        self.assertEqual(join.references["movie_id"], ("movies", "id"))
        self.assertEqual(join.references["actor_id"], ("actors", "id"))

    def test_conflicting_join_table_declarations(self) -> None:
        posts = EntityDefinition(
            "Post",
            Post,
            fields=(primary_key(), column("title")),
            relations=(many_to_many("Tags", "Tag", join_table="post_tags"),),
        )
        tags = EntityDefinition(
            "Tag",
            Tag,
            fields=(primary_key(), column("label")),
            relations=(
                many_to_many(
                    "Posts",
                    "Post",
                    join_table="post_tags",
                    owner_column="tag_ref",
                ),
            ),
        )
        with self.assertRaises(ValueError):
            SchemaRegistry([posts, tags]).join_tables()

    def test_has_many_to_unknown_column_is_invalid(self) -> None:
        posts = EntityDefinition(
            "Post",
            Post,
            fields=(primary_key(), column("title")),
            relations=(has_many("Tags", "Tag"),),
        )
        tags = EntityDefinition("Tag", Tag, fields=(primary_key(), column("label")))
        with self.assertRaises(InvalidPredicateError):
            SchemaRegistry([posts, tags]).validate()


if __name__ == "__main__":
    unittest.main()
