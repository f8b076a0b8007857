"""Position-based points used to weight every contributor's list.

The table is versioned data: stored aggregates record `SCORING_VERSION`
and changing any value changes the meaning of historical scores.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any

SCORING_VERSION = "points-v2"

POINTS_CUTOFF = 40

_HEAD = (60, 54, 50, 46, 43, 40, 38, 36, 34, 32, 30)

# Front-loaded head, then one point less per position down to 1 at the cutoff.
POSITION_POINTS: MappingProxyType[int, int] = MappingProxyType(
    {
        position: (
            _HEAD[position - 1]
            if position <= len(_HEAD)
            else _HEAD[-1] - (position - len(_HEAD))
        )
        for position in range(1, POINTS_CUTOFF + 1)
    }
)


def points_for_position(position: Any) -> int:
    """Points for a 1-based list position; 0 outside the table or for non-int input."""
    if isinstance(position, bool) or not isinstance(position, int):
        return 0
    return POSITION_POINTS.get(position, 0)
