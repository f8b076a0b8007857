"""Tests for the position points table."""

from __future__ import annotations

import pytest

from album_consensus.scoring import (
    POINTS_CUTOFF,
    POSITION_POINTS,
    SCORING_VERSION,
    points_for_position,
)


def test_table_covers_positions_1_to_40():
    assert sorted(POSITION_POINTS) == list(range(1, POINTS_CUTOFF + 1))


def test_head_values():
    assert points_for_position(1) == 60
    assert points_for_position(2) == 54
    assert points_for_position(3) == 50
    assert points_for_position(11) == 30


def test_tail_values():
    assert points_for_position(12) == 29
    assert points_for_position(39) == 2
    assert points_for_position(40) == 1


def test_strictly_decreasing():
    values = [POSITION_POINTS[p] for p in range(1, POINTS_CUTOFF + 1)]
    assert all(a > b for a, b in zip(values, values[1:], strict=False))


@pytest.mark.parametrize("position", [0, -1, 41, 100, None, "1", 1.0, True])
def test_out_of_table_scores_zero(position):
    assert points_for_position(position) == 0


def test_table_is_read_only():
    with pytest.raises(TypeError):
        POSITION_POINTS[1] = 100  # type: ignore[index]


def test_scoring_version_is_set():
    assert SCORING_VERSION == "points-v2"
