"""
tests/test_batch_planner.py
"""

from __future__ import annotations

import pytest

from app.services.batch_planner import plan, should_batch


class TestPlan:
    @pytest.mark.parametrize(
        "count, size, expected_sizes",
        [
            (45, 15, [15, 15, 15]),
            (31, 15, [15, 15, 1]),
            (7, 3, [3, 3, 1]),
            (5, 10, [5]),
            (4, 1, [1, 1, 1, 1]),
        ],
    )
    def test_partition_is_sequential_and_complete(
        self, entity_factory, count: int, size: int, expected_sizes: list[int]
    ) -> None:
        entities = entity_factory(count)
        batches = plan(entities, size)

        assert [len(batch) for batch in batches] == expected_sizes
        flattened = [entity for batch in batches for entity in batch.entities]
        assert flattened == list(entities)
        assert len({entity.id for entity in flattened}) == count

    def test_batches_know_index_and_total(self, entity_factory) -> None:
        batches = plan(entity_factory(7), 3)
        assert [batch.index for batch in batches] == [0, 1, 2]
        assert [batch.number for batch in batches] == [1, 2, 3]
        assert {batch.total for batch in batches} == {3}

    def test_empty_input_gives_no_batches(self) -> None:
        assert plan((), 15) == ()

    @pytest.mark.parametrize("size", [0, -3])
    def test_batch_size_below_one_is_rejected(self, entity_factory, size: int) -> None:
        with pytest.raises(ValueError):
            plan(entity_factory(2), size)


class TestShouldBatch:
    def test_at_threshold_stays_single(self) -> None:
        assert should_batch(30, 30) is False

    def test_above_threshold_batches(self) -> None:
        assert should_batch(31, 30) is True

    def test_default_threshold(self) -> None:
        assert should_batch(30) is False
        assert should_batch(45) is True
