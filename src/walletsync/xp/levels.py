"""Level computation.

Levels are flat: every ``XP_PER_LEVEL`` points is one level, starting at 1.
The web client derives the same value, so the formula must not change
without a matching client release.
"""

from __future__ import annotations

XP_PER_LEVEL = 1000


def level_for(total_xp: int, xp_per_level: int = XP_PER_LEVEL) -> int:
    """``floor(total_xp / xp_per_level) + 1``."""
    return max(total_xp, 0) // xp_per_level + 1


def compute_level(total_xp: int, xp_per_level: int = XP_PER_LEVEL) -> dict:
    """Compute level info from total XP."""
    level = level_for(total_xp, xp_per_level)
    level_floor = (level - 1) * xp_per_level
    return {
        "level": level,
        "xp_into_level": max(total_xp, 0) - level_floor,
        "xp_for_level": xp_per_level,
        "xp_to_next": level_floor + xp_per_level - max(total_xp, 0),
        "next_level": level + 1,
    }
