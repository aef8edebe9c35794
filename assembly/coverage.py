"""
Coverage plan construction

Builds a CoveragePlan from (topic, hours) pairs with exact item
conservation: level totals are locked globally first, topics receive items
in proportion to their hours, and each row is then reconciled so that rows
sum to their topic allocation and columns to the locked level totals.
"""

import math
from typing import Dict, List, Sequence, Tuple

from assembly.errors import AssemblyConfigError
from assembly.schemas import CoveragePlan, TopicRequirement
from assembly.taxonomy import (
    CognitiveLevel, Difficulty, LEVEL_DIFFICULTY, LEVEL_ORDER, LEVEL_WEIGHTS,
)


def distribute_largest_remainder(total: int, weights: Sequence[float]) -> List[int]:
    """
    Split `total` into integer parts proportional to `weights`.

    sum(result) == total whenever any weight is positive. Leftover units go
    to the largest fractional remainders; equal remainders favour the
    earlier position, so callers control tie-breaks through weight order.
    """
    weight_sum = sum(weights)
    if total <= 0 or weight_sum <= 0:
        return [0 for _ in weights]

    ideal = [w / weight_sum * total for w in weights]
    floors = [math.floor(x) for x in ideal]
    # rounded so float noise never reorders genuinely equal remainders
    order = sorted(
        range(len(weights)),
        key=lambda i: (-round(ideal[i] - floors[i], 9), i),
    )
    result = list(floors)
    remaining = total - sum(floors)
    for i in order[:remaining]:
        result[i] += 1
    return result


def _reconcile_columns(matrix: List[List[int]], column_targets: List[int]) -> None:
    """Move single items between columns inside rows until every column hits its target."""
    n_cols = len(column_targets)
    while True:
        col_totals = [sum(row[c] for row in matrix) for c in range(n_cols)]
        over = [c for c in range(n_cols) if col_totals[c] > column_targets[c]]
        under = [c for c in range(n_cols) if col_totals[c] < column_targets[c]]
        if not over or not under:
            return
        src, dst = over[0], under[0]
        # the largest row holding an item in the surplus column gives it up
        donors = sorted(
            (r for r in range(len(matrix)) if matrix[r][src] > 0),
            key=lambda r: -sum(matrix[r]),
        )
        row = donors[0]
        matrix[row][src] -= 1
        matrix[row][dst] += 1


def plan_from_hours(topics: Sequence[Tuple[str, float]], total_items: int) -> CoveragePlan:
    """
    Derive a full coverage plan from instructional hours.

    Args:
        topics:       [(topic name, hours), ...] in display order
        total_items:  number of items the test must contain

    Returns:
        CoveragePlan whose per-level counts sum to total_items and whose
        per-difficulty counts follow the level → difficulty grouping.
    """
    if total_items <= 0:
        raise AssemblyConfigError(f"total_items must be positive, got {total_items}")
    if not topics:
        raise AssemblyConfigError("at least one topic is required")
    if any(hours < 0 for _, hours in topics):
        raise AssemblyConfigError("topic hours cannot be negative")
    total_hours = sum(hours for _, hours in topics)
    if total_hours == 0:
        raise AssemblyConfigError("total hours cannot be zero")

    level_weights = [LEVEL_WEIGHTS[lvl] for lvl in LEVEL_ORDER]
    level_totals = distribute_largest_remainder(total_items, level_weights)
    allocations = distribute_largest_remainder(total_items, [hours for _, hours in topics])

    matrix = [distribute_largest_remainder(n, level_weights) for n in allocations]
    _reconcile_columns(matrix, level_totals)

    requirements = []
    for (name, hours), row in zip(topics, matrix):
        per_level: Dict[CognitiveLevel, int] = dict(zip(LEVEL_ORDER, row))
        per_difficulty: Dict[Difficulty, int] = {d: 0 for d in Difficulty}
        for level, count in per_level.items():
            per_difficulty[LEVEL_DIFFICULTY[level]] += count
        requirements.append(TopicRequirement(
            topic=name,
            hours=hours,
            per_level_counts=per_level,
            per_difficulty_counts=per_difficulty,
        ))
    return CoveragePlan(topics=tuple(requirements))
