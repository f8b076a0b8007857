"""Descriptive statistics for a ranked consensus list.

Stats carry no album identities, so they are safe to show admins before
the list is revealed.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from album_consensus.ranker import RankedAlbum

TOP_POINTS_LIMIT = 20


@dataclass
class AggregateStats:
    """Counts derived from a ranked list."""

    year: int
    participant_count: int
    total_albums: int
    rank_distribution: dict[int, int] = field(default_factory=dict)
    albums_with_3_plus_voters: int = 0
    albums_with_2_voters: int = 0
    albums_with_1_voter: int = 0
    top_points_distribution: list[int] = field(default_factory=list)
    computed_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "participant_count": self.participant_count,
            "total_albums": self.total_albums,
            # JSON object keys are strings
            "rank_distribution": {str(k): v for k, v in self.rank_distribution.items()},
            "albums_with_3_plus_voters": self.albums_with_3_plus_voters,
            "albums_with_2_voters": self.albums_with_2_voters,
            "albums_with_1_voter": self.albums_with_1_voter,
            "top_points_distribution": list(self.top_points_distribution),
            "computed_at": self.computed_at,
        }


def compute_stats(
    ranked: Sequence[RankedAlbum],
    participant_count: int,
    year: int,
) -> AggregateStats:
    """Summarize a ranked list. An empty list gives all-zero counts."""
    rank_counts = Counter(album.rank for album in ranked)

    return AggregateStats(
        year=year,
        participant_count=participant_count,
        total_albums=len(ranked),
        rank_distribution=dict(sorted(rank_counts.items())),
        albums_with_3_plus_voters=sum(1 for a in ranked if a.voter_count >= 3),
        albums_with_2_voters=sum(1 for a in ranked if a.voter_count == 2),
        albums_with_1_voter=sum(1 for a in ranked if a.voter_count == 1),
        top_points_distribution=[a.total_points for a in ranked[:TOP_POINTS_LIMIT]],
        computed_at=datetime.now(UTC).isoformat(),
    )
