"""Fold contributors' list entries into per-album aggregates.

Entries are grouped by dedup key (see `album_consensus.keys`). The first
entry seen for a key supplies the display fields; later entries only add
to the totals.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

from album_consensus.keys import build_album_key
from album_consensus.normalize import Normalizer
from album_consensus.scoring import points_for_position

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawEntry:
    """One album on one contributor's list."""

    source_list_id: str
    contributing_user_id: str
    position: int | None
    artist: str | None
    album: str | None
    contributor_name: str | None = None
    album_external_id: str | None = None
    release_date: str | None = None
    country: str | None = None
    genre_1: str | None = None
    genre_2: str | None = None
    cover_image: bytes | None = None
    cover_image_format: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> RawEntry:
        """Build an entry from a source-list row as returned by AggregateDB."""
        return cls(
            source_list_id=row["list_id"],
            contributing_user_id=row["user_id"],
            contributor_name=row.get("username"),
            position=row.get("position"),
            artist=row.get("artist"),
            album=row.get("album"),
            album_external_id=row.get("album_id"),
            release_date=row.get("release_date"),
            country=row.get("country"),
            genre_1=row.get("genre_1"),
            genre_2=row.get("genre_2"),
            cover_image=row.get("cover_image"),
            cover_image_format=row.get("cover_image_format"),
        )


@dataclass(frozen=True)
class VoterSummary:
    """A single contributor's placement of an album."""

    contributor_name: str
    position: int | None
    points: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "contributor_name": self.contributor_name,
            "position": self.position,
            "points": self.points,
        }


@dataclass
class AlbumAggregate:
    """Accumulated votes for one dedup key."""

    representative_album_id: str | None
    artist: str
    album: str
    cover_image: bytes | None = None
    cover_image_format: str | None = None
    release_date: str = ""
    country: str = ""
    genre_1: str = ""
    genre_2: str = ""
    total_points: int = 0
    voter_count: int = 0
    positions: list[int] = field(default_factory=list)
    voters: list[VoterSummary] = field(default_factory=list)

    @classmethod
    def seed(cls, entry: RawEntry) -> AlbumAggregate:
        """Start an aggregate from the display fields of its first entry."""
        return cls(
            representative_album_id=entry.album_external_id or None,
            artist=entry.artist or "",
            album=entry.album or "",
            cover_image=entry.cover_image or None,
            cover_image_format=entry.cover_image_format or None,
            release_date=entry.release_date or "",
            country=entry.country or "",
            genre_1=entry.genre_1 or "",
            genre_2=entry.genre_2 or "",
        )

    def add_vote(self, entry: RawEntry) -> None:
        """Count one entry towards the totals. Display fields are left alone."""
        points = points_for_position(entry.position)
        self.total_points += points
        self.voter_count += 1
        if entry.position is not None:
            self.positions.append(entry.position)
        self.voters.append(
            VoterSummary(
                contributor_name=entry.contributor_name or entry.contributing_user_id,
                position=entry.position,
                points=points,
            )
        )


def aggregate(
    year: int,
    entries: Iterable[RawEntry],
    normalizer: Normalizer | None = None,
) -> dict[str, AlbumAggregate]:
    """
    Fold entries into a mapping of dedup key -> AlbumAggregate.

    Nothing is dropped here, zero-point positions included, so that
    voter counts reflect real participation. Filtering happens in the ranker.
    """
    albums: dict[str, AlbumAggregate] = {}
    entry_count = 0

    for entry in entries:
        entry_count += 1
        key = build_album_key(entry.artist, entry.album, normalizer)

        if key not in albums:
            albums[key] = AlbumAggregate.seed(entry)

        albums[key].add_vote(entry)

    logger.debug(f"Aggregated {entry_count} entries into {len(albums)} albums for {year}")
    return albums
