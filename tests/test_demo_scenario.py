from __future__ import annotations

import unittest

from assoc_orm.core.query import Query
from assoc_orm.demo import run_demo, seed
from assoc_orm.demo.scenario import report_actor_movies
from assoc_orm.reporting import MemorySink
from tests.orm_test_helpers import make_context

EXPECTED_OUTPUT = [
    "User from a note: Alex",
    "-----------------------------",
    "Notes from a user:",
    "Shopping - Milk, bread, coffee",
    "Work - Finish the quarterly report",
    "-----------------------------",
    "Credit card from a user: 4111 1111 1111 1111",
    "Actors:",
    "Robert Downey Jr.",
    "Chris Evans",
    "Scarlett Johansson",
    "Chadwick Boseman",
    "Actor: Robert Downey Jr.",
    "Movies:",
    "Iron Man",
    "Avengers",
    "Avengers Infinity War",
    "Sherlock Holmes",
    "orders:",
    "2023-05-01 10:30:00: by Card,  50 р.",
    "2023-05-04 09:45:00: by Card,  75 р.",
    "Consumers with domain .com:",
    "John: john@example.com",
    "Ivan: ivan@shop.com",
    "Orders of user John:",
    "2023-05-01 10:30:00: by Card,  50 р.",
    "2023-05-03 18:15:00: by Card,  20 р.",
]


class DemoScenarioTests(unittest.TestCase):
    def setUp(self) -> None:
        self.ctx, self.db, self.conn = make_context()

    def tearDown(self) -> None:
        self.conn.close()

    def test_seed_runs_once(self) -> None:
        self.assertTrue(seed(self.ctx))
        self.assertFalse(seed(self.ctx))
        self.assertEqual(self.ctx.count(Query("Movie")), 6)
        self.assertEqual(self.ctx.count(Query("Actor")), 4)
        rows = self.conn.execute('SELECT COUNT(*) FROM "filmography";').fetchone()
        self.assertEqual(rows[0], 11)

    def test_walkthrough_output(self) -> None:
        seed(self.ctx)
        sink = MemorySink()
        run_demo(self.ctx, sink)
        self.assertEqual(sink.lines, EXPECTED_OUTPUT)

    def test_other_domain(self) -> None:
        seed(self.ctx)
        sink = MemorySink()
        run_demo(self.ctx, sink, domain=".org")
        tail = sink.lines[sink.lines.index("Consumers with domain .org:") :]
        self.assertEqual(
            tail,
            [
                "Consumers with domain .org:",
                "Maria: maria@example.org",
                "Orders of user Maria:",
                "2023-05-04 09:45:00: by Card,  75 р.",
            ],
        )

    def test_missing_actor_is_reported_not_raised(self) -> None:
        seed(self.ctx)
        sink = MemorySink()
        report_actor_movies(self.ctx, sink, "Nobody")
        self.assertEqual(sink.lines, ["Actor Nobody not found."])


if __name__ == "__main__":
    unittest.main()
