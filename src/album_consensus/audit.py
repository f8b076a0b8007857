"""Duplicate audit for a year's contributor lists.

Aggregation already merges entries by dedup key, so duplicates never show
up in the ranked output. The audit reports where the source data disagrees
(one album under several album ids, or keys that nearly collide) so it can
be cleaned up. It never writes.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import combinations
from typing import Any

from rapidfuzz import fuzz

from album_consensus.aggregate_list import AggregateList, validate_year
from album_consensus.keys import build_album_key, split_album_key

logger = logging.getLogger(__name__)

SPOTIFY_ID_PATTERN = re.compile(r"^[a-zA-Z0-9]{22}$")
MUSICBRAINZ_ID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I
)


@dataclass
class AuditEntry:
    album_id: str | None
    position: int
    username: str
    list_name: str


@dataclass
class DuplicateGroup:
    """Entries sharing a dedup key but not an album id."""

    key: str
    artist: str
    album: str
    album_ids: list[str]
    canonical_album_id: str | None
    entries: list[AuditEntry] = field(default_factory=list)

    @property
    def entry_count(self) -> int:
        return len(self.entries)


@dataclass
class NearDuplicate:
    """Two distinct keys whose normalized text is nearly identical."""

    key_a: str
    key_b: str
    display_a: str
    display_b: str
    score: float


@dataclass
class AuditReport:
    year: int
    audited_at: str
    total_entries_scanned: int
    unique_albums: int
    duplicates: list[DuplicateGroup] = field(default_factory=list)

    @property
    def duplicate_groups(self) -> int:
        return len(self.duplicates)


def select_canonical_album_id(album_ids: list[str | None]) -> str | None:
    """
    Pick the id the other ids should be merged into.

    Preference: Spotify id > MusicBrainz UUID > other external id >
    `internal-` id > `manual-` id.
    """
    valid_ids = [i for i in album_ids if i and i.strip()]
    if not valid_ids:
        return None

    for candidate in valid_ids:
        if SPOTIFY_ID_PATTERN.match(candidate):
            return candidate
    for candidate in valid_ids:
        if MUSICBRAINZ_ID_PATTERN.match(candidate):
            return candidate
    for candidate in valid_ids:
        if not candidate.startswith(("manual-", "internal-")):
            return candidate
    for candidate in valid_ids:
        if candidate.startswith("internal-"):
            return candidate
    return valid_ids[0]


class DuplicateAuditor:
    """Audits the entries that feed a year's aggregate list."""

    def __init__(self, aggregate_list: AggregateList):
        self.aggregate_list = aggregate_list

    def _contributor_rows(self, year: int) -> list[dict[str, Any]]:
        validate_year(year)
        db = self.aggregate_list.db
        main_lists = db.fetch_main_lists(year)
        return db.fetch_list_items([lst["list_id"] for lst in main_lists])

    def find_duplicates(self, year: int) -> AuditReport:
        """Report keys that appear under more than one album id, most ids first."""
        logger.info(f"Running duplicate audit for year {year}")
        rows = self._contributor_rows(year)
        normalizer = self.aggregate_list.normalizer

        groups: dict[str, dict[str, Any]] = {}
        for row in rows:
            key = build_album_key(row["artist"], row["album"], normalizer)
            if key not in groups:
                groups[key] = {
                    "artist": row["artist"] or "",
                    "album": row["album"] or "",
                    "album_ids": [],
                    "entries": [],
                }
            group = groups[key]
            if row["album_id"] and row["album_id"] not in group["album_ids"]:
                group["album_ids"].append(row["album_id"])
            group["entries"].append(
                AuditEntry(
                    album_id=row["album_id"],
                    position=row["position"],
                    username=row["username"],
                    list_name=row["list_name"],
                )
            )

        duplicates = [
            DuplicateGroup(
                key=key,
                artist=group["artist"],
                album=group["album"],
                album_ids=group["album_ids"],
                canonical_album_id=select_canonical_album_id(group["album_ids"]),
                entries=group["entries"],
            )
            for key, group in groups.items()
            if len(group["album_ids"]) > 1
        ]
        duplicates.sort(key=lambda d: -len(d.album_ids))

        logger.info(
            f"Duplicate audit for {year}: {len(duplicates)} albums with multiple album ids"
        )
        return AuditReport(
            year=year,
            audited_at=datetime.now(UTC).isoformat(),
            total_entries_scanned=len(rows),
            unique_albums=len(groups),
            duplicates=duplicates,
        )

    def find_near_duplicates(self, year: int, threshold: float = 90.0) -> list[NearDuplicate]:
        """
        Distinct keys that score at least `threshold` on token_sort_ratio.

        Advisory only: these are candidates for a human to merge, the
        aggregation never merges on similarity.
        """
        rows = self._contributor_rows(year)
        normalizer = self.aggregate_list.normalizer

        displays: dict[str, str] = {}
        for row in rows:
            key = build_album_key(row["artist"], row["album"], normalizer)
            displays.setdefault(key, f"{row['artist'] or ''} - {row['album'] or ''}")

        results: list[NearDuplicate] = []
        for key_a, key_b in combinations(sorted(displays), 2):
            artist_a, album_a = split_album_key(key_a)
            artist_b, album_b = split_album_key(key_b)
            score = fuzz.token_sort_ratio(f"{artist_a} {album_a}", f"{artist_b} {album_b}")
            if score >= threshold:
                results.append(
                    NearDuplicate(
                        key_a=key_a,
                        key_b=key_b,
                        display_a=displays[key_a],
                        display_b=displays[key_b],
                        score=round(score, 1),
                    )
                )

        results.sort(key=lambda n: (-n.score, n.key_a, n.key_b))
        logger.debug(f"Near-duplicate scan for {year}: {len(results)} pairs >= {threshold}")
        return results
