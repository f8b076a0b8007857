"""Tests for the duplicate audit."""

from __future__ import annotations

import pytest

from album_consensus.aggregate_db import AggregateDB
from album_consensus.aggregate_list import AggregateList
from album_consensus.audit import DuplicateAuditor, select_canonical_album_id

YEAR = 2024

SPOTIFY_ID = "4LH4d3cOWNNsVw41Gqt2kv"
MB_ID = "b1392450-e666-3926-a536-22c65f834433"


@pytest.fixture
def duplicate_db(temp_db: AggregateDB, users) -> AggregateDB:
    """Two contributors list the same album under different ids."""
    db = temp_db
    list_a = db.create_list(users["a"], "Alice 2024", YEAR, is_main=True, list_id="list-a")
    db.add_list_items(
        list_a,
        [
            {"position": 1, "album_id": "manual-17", "artist": "Radiohead", "album": "OK Computer"},
            {"position": 2, "album_id": SPOTIFY_ID, "artist": "Massive Attack", "album": "Mezzanine"},
            {"position": 3, "album_id": "internal-9", "artist": "Portishead", "album": "Dummy"},
        ],
    )
    list_b = db.create_list(users["b"], "Bob 2024", YEAR, is_main=True, list_id="list-b")
    db.add_list_items(
        list_b,
        [
            {
                "position": 1,
                "album_id": "discogs-r7890",
                "artist": "radiohead",
                "album": "OK Computer (Remastered)",
            },
            {"position": 2, "album_id": MB_ID, "artist": "Radiohead", "album": "OK Computer"},
            {"position": 3, "album_id": "internal-9", "artist": "Portishead", "album": "Dummy"},
            {"position": 4, "artist": "Portishead", "album": "Dumy"},
        ],
    )
    db.add_contributor(YEAR, users["a"], users["admin1"])
    db.add_contributor(YEAR, users["b"], users["admin1"])
    return db


@pytest.fixture
def auditor(duplicate_db: AggregateDB) -> DuplicateAuditor:
    return DuplicateAuditor(AggregateList(duplicate_db))


class TestSelectCanonicalAlbumId:
    def test_prefers_spotify(self):
        assert select_canonical_album_id(["manual-1", MB_ID, SPOTIFY_ID]) == SPOTIFY_ID

    def test_then_musicbrainz(self):
        assert select_canonical_album_id(["internal-3", MB_ID, "manual-1"]) == MB_ID

    def test_then_other_external(self):
        assert select_canonical_album_id(["manual-1", "discogs-123", "internal-3"]) == "discogs-123"

    def test_internal_before_manual(self):
        assert select_canonical_album_id(["manual-1", "internal-3"]) == "internal-3"

    def test_falls_back_to_first(self):
        assert select_canonical_album_id(["manual-2", "manual-1"]) == "manual-2"

    def test_empty(self):
        assert select_canonical_album_id([None, "", "  "]) is None


class TestFindDuplicates:
    def test_reports_album_under_several_ids(self, auditor: DuplicateAuditor):
        report = auditor.find_duplicates(YEAR)

        assert report.total_entries_scanned == 7
        assert report.duplicate_groups == 1
        (group,) = report.duplicates
        assert group.album == "OK Computer"
        assert set(group.album_ids) == {"manual-17", "discogs-r7890", MB_ID}
        assert group.canonical_album_id == MB_ID
        assert group.entry_count == 3
        assert {e.username for e in group.entries} == {"alice", "bob"}

    def test_same_id_is_not_a_duplicate(self, auditor: DuplicateAuditor):
        report = auditor.find_duplicates(YEAR)
        assert "Dummy" not in {g.album for g in report.duplicates}

    def test_only_contributors_scanned(self, duplicate_db: AggregateDB, users):
        duplicate_db.remove_contributor(YEAR, users["b"])
        report = DuplicateAuditor(AggregateList(duplicate_db)).find_duplicates(YEAR)
        assert report.total_entries_scanned == 3
        assert report.duplicates == []

    def test_empty_year(self, agg: AggregateList):
        report = DuplicateAuditor(agg).find_duplicates(1999)
        assert report.total_entries_scanned == 0
        assert report.unique_albums == 0


class TestFindNearDuplicates:
    def test_typo_flagged(self, auditor: DuplicateAuditor):
        pairs = auditor.find_near_duplicates(YEAR, threshold=80)
        displays = {frozenset((p.display_a, p.display_b)) for p in pairs}
        assert frozenset(("Portishead - Dummy", "Portishead - Dumy")) in displays

    def test_unrelated_albums_not_flagged(self, auditor: DuplicateAuditor):
        pairs = auditor.find_near_duplicates(YEAR, threshold=80)
        for pair in pairs:
            assert "Mezzanine" not in pair.display_a
            assert "Mezzanine" not in pair.display_b

    def test_threshold_100_finds_nothing(self, auditor: DuplicateAuditor):
        assert auditor.find_near_duplicates(YEAR, threshold=100) == []
