"""Consensus ranking of aggregated albums."""

from __future__ import annotations

import base64
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from album_consensus.aggregator import AlbumAggregate, VoterSummary


@dataclass
class RankedAlbum:
    """An album's place in the consensus list."""

    rank: int
    representative_album_id: str | None
    artist: str
    album: str
    total_points: int
    voter_count: int
    average_position: float
    highest_position: int  # Best placement (lowest number)
    lowest_position: int
    release_date: str = ""
    country: str = ""
    genre_1: str = ""
    genre_2: str = ""
    cover_image: bytes | None = None
    cover_image_format: str | None = None
    voters: list[VoterSummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage. Cover bytes are base64-encoded."""
        return {
            "rank": self.rank,
            "album_id": self.representative_album_id,
            "artist": self.artist,
            "album": self.album,
            "release_date": self.release_date,
            "country": self.country,
            "genre_1": self.genre_1,
            "genre_2": self.genre_2,
            "cover_image": (
                base64.b64encode(self.cover_image).decode("ascii") if self.cover_image else None
            ),
            "cover_image_format": self.cover_image_format,
            "total_points": self.total_points,
            "voter_count": self.voter_count,
            "average_position": self.average_position,
            "highest_position": self.highest_position,
            "lowest_position": self.lowest_position,
            "voters": [v.to_dict() for v in self.voters],
        }


def _round_half_up(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _sort_key(album: AlbumAggregate) -> tuple[int, int]:
    return (-album.total_points, min(album.positions))


def rank(albums: Mapping[str, AlbumAggregate]) -> list[RankedAlbum]:
    """
    Rank aggregates by total points, best single placement breaking ties.

    Albums that scored nothing are excluded. Albums tied on both points and
    best placement share a rank, and the next album's rank is its 1-based
    position (competition ranking: 1, 1, 3).
    """
    eligible = [a for a in albums.values() if a.total_points > 0 and a.positions]
    ordered = sorted(eligible, key=_sort_key)

    ranked: list[RankedAlbum] = []
    previous_key: tuple[int, int] | None = None

    for index, album in enumerate(ordered):
        key = _sort_key(album)
        if previous_key is not None and key == previous_key:
            album_rank = ranked[-1].rank
        else:
            album_rank = index + 1
        previous_key = key

        positions = album.positions
        ranked.append(
            RankedAlbum(
                rank=album_rank,
                representative_album_id=album.representative_album_id,
                artist=album.artist,
                album=album.album,
                total_points=album.total_points,
                voter_count=album.voter_count,
                average_position=_round_half_up(sum(positions) / len(positions)),
                highest_position=min(positions),
                lowest_position=max(positions),
                release_date=album.release_date,
                country=album.country,
                genre_1=album.genre_1,
                genre_2=album.genre_2,
                cover_image=album.cover_image,
                cover_image_format=album.cover_image_format,
                voters=sorted(
                    album.voters,
                    key=lambda v: v.position if v.position is not None else float("inf"),
                ),
            )
        )

    return ranked
