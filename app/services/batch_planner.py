"""
app/services/batch_planner.py

Splits the aggregated student list into generation batches.
"""

from __future__ import annotations

from typing import Final, Sequence

from app.domain.classroom import Batch, EntityStats

DEFAULT_BATCH_SIZE: Final[int] = 15
DEFAULT_SINGLE_SHOT_THRESHOLD: Final[int] = 30


def should_batch(entity_count: int, threshold: int = DEFAULT_SINGLE_SHOT_THRESHOLD) -> bool:
    """
    Return True when *entity_count* is large enough to justify batching.
    """

    return entity_count > threshold


def plan(entities: Sequence[EntityStats], batch_size: int = DEFAULT_BATCH_SIZE) -> tuple[Batch, ...]:
    """
    Partition *entities* sequentially into batches of at most *batch_size*.

    Batch ``k`` holds ``entities[k * batch_size:(k + 1) * batch_size]``.
    Concatenating the batches in index order reproduces the input.

    Raises:
        ValueError: If ``batch_size`` is smaller than 1.
    """

    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    items = tuple(entities)
    total = (len(items) + batch_size - 1) // batch_size
    return tuple(
        Batch(
            index=index,
            total=total,
            entities=items[index * batch_size:(index + 1) * batch_size],
        )
        for index in range(total)
    )
