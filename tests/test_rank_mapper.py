from __future__ import annotations

import unittest

from ranked.ranking import MAX_RANK, MEDIAN_RANK, MIN_RANK, Position
from tests.models import Item, SqliteTestCase


class PositionTranslationTestCase(SqliteTestCase):
    def _seed(self, ranks: list[int]) -> None:
        for idx, rank in enumerate(ranks):
            self._add(Item(name=f"seed{idx}", row_order=rank))

    def test_first_on_empty_group_is_median(self) -> None:
        item = self._add(Item(name="a"), row_order_position=Position.first)
        self.assertEqual(item.row_order, MEDIAN_RANK)
        self.assertEqual(MEDIAN_RANK, 2**29)

    def test_new_record_without_position_goes_last(self) -> None:
        a = self._add(Item(name="a"))
        b = self._add(Item(name="b"))
        self.assertEqual(a.row_order, MEDIAN_RANK)
        self.assertEqual(b.row_order, 805306368)

    def test_middle(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="m"), row_order_position="middle")
        self.assertEqual(item.row_order, MEDIAN_RANK)

    def test_first_halves_gap_to_min(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="f"), row_order_position=Position.first)
        self.assertEqual(item.row_order, 50)

    def test_last_halves_gap_to_max(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="l"), row_order_position=Position.last)
        self.assertEqual(item.row_order, 536871062)

    def test_insert_between_neighbors_does_not_touch_them(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="new"), row_order_position=1)
        self.assertEqual(item.row_order, 150)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", 100), ("new", 150), ("seed1", 200), ("seed2", 300)],
        )

    def test_numeric_string_position(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="s"), row_order_position="2")
        self.assertEqual(item.row_order, 250)

    def test_zero_means_first(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="z"), row_order_position=0)
        self.assertEqual(item.row_order, 50)

    def test_index_past_end_goes_after_last(self) -> None:
        self._seed([100, 200, 300])
        item = self._add(Item(name="far"), row_order_position=10)
        self.assertEqual(item.row_order, 536871062)
        self.assertEqual(self._ordered(Item, "row_order")[-1][0], "far")

    def test_non_numeric_string_raises(self) -> None:
        self._seed([100])
        self.db.add(Item(name="bad", row_order_position="abc"))
        with self.assertRaises(ValueError):
            self.db.commit()
        self.db.rollback()

    def test_unknown_position_type_is_ignored(self) -> None:
        item = self._add(Item(name="odd"), row_order_position=1.5)
        self.assertEqual(item.row_order, MAX_RANK)

    def test_explicit_index_places_exactly_i_before(self) -> None:
        self._seed([1000, 2000, 3000])
        for step, position in enumerate([0, 1, 1, 3, 2, 6, 4, 8]):
            name = f"p{step}"
            self._add(Item(name=name), row_order_position=position)
            names = [n for n, _ in self._ordered(Item, "row_order")]
            self.assertEqual(names.index(name), position, names)

    def test_position_is_consumed_after_flush(self) -> None:
        item = self._add(Item(name="a"), row_order_position=Position.first)
        self.assertIsNone(item.row_order_position)

    def test_repeated_first_reverses_insertion_order(self) -> None:
        names = [f"i{n}" for n in range(40)]
        for name in names:
            self._add(Item(name=name), row_order_position=Position.first)

        ordered = self._ordered(Item, "row_order")
        self.assertEqual([n for n, _ in ordered], list(reversed(names)))
        ranks = [r for _, r in ordered]
        self.assertEqual(len(set(ranks)), len(ranks))
        self.assertTrue(all(MIN_RANK <= r <= MAX_RANK for r in ranks))


class RearrangeTestCase(SqliteTestCase):
    def _seed(self, ranks: list[int]) -> None:
        for idx, rank in enumerate(ranks):
            self._add(Item(name=f"seed{idx}", row_order=rank))

    def test_collision_shifts_upper_run_up(self) -> None:
        self._seed([100, 101, 300])
        self._add(Item(name="new"), row_order_position=1)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", 100), ("new", 101), ("seed1", 102), ("seed2", 301)],
        )

    def test_collision_near_top_shifts_lower_run_down(self) -> None:
        self._seed([100, 101, MAX_RANK - 1])
        self._add(Item(name="new"), row_order_position=1)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", 99), ("new", 100), ("seed1", 101), ("seed2", MAX_RANK - 1)],
        )

    def test_last_at_exhausted_top_shifts_down(self) -> None:
        # 顶端没有空位但底部还有余量时，走整体下移而不是整组重排
        self._seed([MAX_RANK - 1, MAX_RANK])
        self._add(Item(name="new"), row_order_position=Position.last)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", MAX_RANK - 2), ("seed1", MAX_RANK - 1), ("new", MAX_RANK)],
        )

    def test_explicit_rank_collision_on_update(self) -> None:
        self._seed([100, 200, 300])
        moved = self.db.query(Item).filter_by(name="seed1").one()
        moved.row_order = 100
        self.db.commit()
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed1", 100), ("seed0", 101), ("seed2", 301)],
        )

    def test_rank_above_max_is_pulled_back_into_range(self) -> None:
        self._seed([100, 200])
        item = self._add(Item(name="big", row_order=MAX_RANK + 10))
        self.assertEqual(item.row_order, MAX_RANK)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", 99), ("seed1", 199), ("big", MAX_RANK)],
        )


class RebalanceTestCase(SqliteTestCase):
    def _seed(self, ranks: list[int]) -> None:
        for idx, rank in enumerate(ranks):
            self._add(Item(name=f"seed{idx}", row_order=rank))

    def test_exhausted_gap_triggers_rebalance(self) -> None:
        self._seed([0, 1])
        self._add(Item(name="new"), row_order_position=1)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed0", 268435456), ("new", 536870912), ("seed1", 805306368)],
        )

    def test_rebalance_is_idempotent_on_balanced_group(self) -> None:
        self._seed([0, 1])
        new = self._add(Item(name="new"), row_order_position=1)
        before = self._ordered(Item, "row_order")

        mapper = Item.__rankers__["row_order"].bind(new)
        mapper.rebalance_ranks()
        self.db.commit()

        self.assertEqual(self._ordered(Item, "row_order"), before)

    def test_saturated_boundaries_rebalance_inserts_before_equal_rank(self) -> None:
        # 目标 rank 与现有最后一条相等时，重排会把目标插在它前面（保留原有的并列规则）
        self._seed([MIN_RANK, MAX_RANK - 1, MAX_RANK])
        self._add(Item(name="new"), row_order_position=Position.last)
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [
                ("seed0", 214748365),
                ("seed1", 429496730),
                ("new", 644245094),
                ("seed2", 858993459),
            ],
        )


class SameFlushTestCase(SqliteTestCase):
    """同一次 flush 里的多条记录按加入顺序排序，彼此可见"""

    def _ranks_are_unique(self) -> None:
        ranks = [r for _, r in self._ordered(Item, "row_order")]
        self.assertEqual(len(set(ranks)), len(ranks), ranks)

    def test_add_all_without_position_appends_in_order(self) -> None:
        self.db.add_all([Item(name="a"), Item(name="b"), Item(name="c")])
        self.db.commit()
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("a", MEDIAN_RANK), ("b", 805306368), ("c", 939524096)],
        )

    def test_add_all_after_existing_rows(self) -> None:
        self._add(Item(name="seed", row_order=100))
        self.db.add_all([Item(name="a"), Item(name="b")])
        self.db.commit()
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("seed", 100), ("a", 536870962), ("b", 805306393)],
        )

        self.db.add_all([
            Item(name="c", row_order_position=Position.first),
            Item(name="d", row_order_position=Position.first),
        ])
        self.db.commit()
        self.assertEqual(
            [n for n, _ in self._ordered(Item, "row_order")],
            ["d", "c", "seed", "a", "b"],
        )
        self.assertEqual(self._ordered(Item, "row_order")[:2], [("d", 25), ("c", 50)])
        self._ranks_are_unique()

    def test_equal_explicit_ranks_in_one_flush_rebalance(self) -> None:
        self.db.add_all([Item(name="a", row_order=100), Item(name="b", row_order=100)])
        self.db.commit()
        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("b", 357913941), ("a", 715827882)],
        )

    def test_moving_and_inserting_in_one_flush(self) -> None:
        for name, rank in (("a", 100), ("b", 200), ("c", 300)):
            self._add(Item(name=name, row_order=rank))

        c = self.db.query(Item).filter_by(name="c").one()
        c.row_order_position = Position.first
        self.db.add(Item(name="d", row_order_position=Position.first))
        self.db.commit()

        self.assertEqual(
            self._ordered(Item, "row_order"),
            [("c", 25), ("d", 50), ("a", 100), ("b", 200)],
        )

    def test_moving_two_rows_to_first_in_one_flush(self) -> None:
        for name, rank in (("a", 100), ("b", 200), ("c", 300)):
            self._add(Item(name=name, row_order=rank))

        for name in ("b", "c"):
            self.db.query(Item).filter_by(name=name).one().row_order_position = Position.first
        self.db.commit()

        ordered = self._ordered(Item, "row_order")
        self.assertEqual(ordered[-1], ("a", 100))
        self.assertEqual(sorted(n for n, _ in ordered[:2]), ["b", "c"])
        self._ranks_are_unique()


if __name__ == "__main__":
    unittest.main()
