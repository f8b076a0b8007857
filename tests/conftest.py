"""Pytest configuration and shared fixtures for album-consensus tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from album_consensus.aggregate_db import AggregateDB
from album_consensus.aggregate_list import AggregateList

YEAR = 2024

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def temp_db(tmp_path: Path) -> AggregateDB:
    """Provide an empty AggregateDB in a temporary directory."""
    return AggregateDB(tmp_path / "album_consensus.sqlite")


@pytest.fixture
def agg(temp_db: AggregateDB) -> AggregateList:
    return AggregateList(temp_db)


@pytest.fixture
def users(temp_db: AggregateDB) -> dict[str, str]:
    """Two contributors, two admins and a user without a list."""
    db = temp_db
    db.upsert_user("user-a", "alice", "alice@example.com")
    db.upsert_user("user-b", "bob", "bob@example.com")
    db.upsert_user("user-c", "carol")
    db.upsert_user("admin-1", "root", role="admin")
    db.upsert_user("admin-2", "ops", role="admin")
    return {"a": "user-a", "b": "user-b", "c": "user-c", "admin1": "admin-1", "admin2": "admin-2"}


@pytest.fixture
def populated_db(temp_db: AggregateDB, users: dict[str, str]) -> AggregateDB:
    """
    Year 2024 where A and B each rank the same two albums in opposite order,
    plus an unapproved main list from C and a non-main list from A.
    """
    db = temp_db
    db.upsert_album("spotify-x", "Album X Artist", "Album X", release_date="2024-03-01")
    db.upsert_album("spotify-y", "Album Y Artist", "Album Y", country="UK")

    list_a = db.create_list(users["a"], "Alice 2024", YEAR, is_main=True, list_id="list-a")
    db.add_list_items(
        list_a,
        [
            {"position": 1, "album_id": "spotify-x"},
            {"position": 2, "album_id": "spotify-y"},
        ],
    )

    list_b = db.create_list(users["b"], "Bob 2024", YEAR, is_main=True, list_id="list-b")
    db.add_list_items(
        list_b,
        [
            {"position": 1, "album_id": "spotify-y"},
            {"position": 2, "album_id": "spotify-x"},
        ],
    )

    list_c = db.create_list(users["c"], "Carol 2024", YEAR, is_main=True, list_id="list-c")
    db.add_list_items(list_c, [{"position": 1, "artist": "Carol Pick", "album": "Only Mine"}])

    drafts = db.create_list(users["a"], "Alice drafts", YEAR, is_main=False, list_id="list-a2")
    db.add_list_items(drafts, [{"position": 1, "artist": "Draft", "album": "Never Counted"}])

    db.add_contributor(YEAR, users["a"], users["admin1"])
    db.add_contributor(YEAR, users["b"], users["admin1"])
    return db


@pytest.fixture
def populated_agg(populated_db: AggregateDB) -> AggregateList:
    return AggregateList(populated_db)
