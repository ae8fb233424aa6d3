"""
prodigyhub.engine.leveling — Tiered Leveling Curve
===================================================

THE single canonical implementation of the XP → level mapping.
Pure functions, no DB or network I/O.  Import from here instead of
re-deriving thresholds in services, routes, or the dashboard.

The curve is a tiered *marginal cost* schedule: the XP needed to go from
level ``N`` to ``N + 1``::

    0 → 1        50
    1 → 2       100
    2 → 10      200 per level
    10 → 20     500 per level
    20 → 30    1000 per level
    30 → 50    5000 per level
    50 → 90   10000 per level
    90 → 100  50000 per level
    100 +    100000 per level

:func:`level_of` and :func:`xp_threshold_for` are exact inverses at every
threshold: ``level_of(xp_threshold_for(L)) == L``.
"""

from __future__ import annotations

from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Schedule: (first level of the tier, last level of the tier, XP per level).
# ``None`` as the upper bound marks the open-ended final tier.
# ---------------------------------------------------------------------------
LEVEL_TIERS: tuple[tuple[int, int | None, int], ...] = (
    (0, 1, 50),
    (1, 2, 100),
    (2, 3, 200),
    (3, 10, 200),
    (10, 20, 500),
    (20, 30, 1_000),
    (30, 50, 5_000),
    (50, 90, 10_000),
    (90, 100, 50_000),
    (100, None, 100_000),
)


@dataclass(frozen=True, slots=True)
class LevelProgress:
    """Where a user sits inside their current level."""

    level: int
    progress_xp: int   # XP earned since reaching ``level``
    level_span: int    # XP between ``level`` and ``level + 1``
    percentage: int    # 0–100, rounded
    xp_needed: int     # XP still required for ``level + 1``


def _check_non_negative(value: int, name: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")


def xp_cost_of_level(level: int) -> int:
    """Marginal XP needed to advance from *level* to ``level + 1``."""
    _check_non_negative(level, "level")
    for _start, end, cost in LEVEL_TIERS:
        if end is None or level < end:
            return cost
    raise AssertionError("unreachable: final tier is open-ended")


def xp_threshold_for(level: int) -> int:
    """Cumulative XP required to *be* at *level*.

    ``xp_threshold_for(0) == 0``; ``xp_threshold_for(2) == 150``.
    """
    _check_non_negative(level, "level")
    total = 0
    for start, end, cost in LEVEL_TIERS:
        if level <= start:
            break
        top = level if end is None else min(level, end)
        total += (top - start) * cost
    return total


def level_of(total_xp: int) -> int:
    """Level reached with *total_xp* cumulative XP.

    Walks the schedule greedily: whole tiers are consumed before moving to
    the next range, and only complete levels count.
    """
    _check_non_negative(total_xp, "total_xp")
    remaining = total_xp
    level = 0
    for start, end, cost in LEVEL_TIERS:
        if end is None:
            level += remaining // cost
            break
        tier_cost = (end - start) * cost
        if remaining >= tier_cost:
            remaining -= tier_cost
            level = end
            continue
        level += remaining // cost
        break
    return level


def xp_to_next_level(total_xp: int) -> int:
    """XP still needed to reach the level after the current one."""
    return xp_threshold_for(level_of(total_xp) + 1) - total_xp


def level_progress(total_xp: int) -> LevelProgress:
    """Progress summary for dashboards and ``/users/{id}/progress``."""
    level = level_of(total_xp)
    floor = xp_threshold_for(level)
    span = xp_threshold_for(level + 1) - floor
    progress = total_xp - floor
    return LevelProgress(
        level=level,
        progress_xp=progress,
        level_span=span,
        percentage=round(progress * 100 / span),
        xp_needed=span - progress,
    )
