"""
SQLite store for source lists, aggregate records, reveal confirmations,
contributors and reveal views.

Source lists (users, albums, lists, list items) are owned by the
list-editing side of the application; this module only reads them, plus
a few insert helpers used to load data.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from album_consensus.scoring import POINTS_CUTOFF

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


def _now() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class ConfirmationOutcome:
    """What happened inside one serialized confirm/recount/flip sequence."""

    already_revealed: bool
    inserted: bool
    confirmation_count: int
    just_revealed: bool


class AggregateNotFoundError(LookupError):
    """Raised when a year has no aggregate record where one is required."""


class AggregateDB:
    """
    SQLite database for aggregate lists and their reveal workflow.

    Provides schema creation and operations for:
    - app_user, album, user_list, list_item: source data (read side)
    - aggregate_list: one computed record per year
    - aggregate_list_confirmation: reveal approvals
    - aggregate_list_contributor: users whose main list is counted
    - aggregate_list_view: users who have been shown a revealed list
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with foreign keys enabled."""
        conn = sqlite3.connect(self.db_path, timeout=30.0)
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _db_connection(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database connections.

        Automatically handles connection lifecycle and ensures cleanup.
        """
        conn = self._get_connection()
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, exclusive: bool = False) -> Iterator[sqlite3.Connection]:
        """
        Run a block in one explicit transaction.

        Commits on success, rolls back and re-raises on any error.

        Args:
            exclusive: If True, starts with BEGIN EXCLUSIVE so concurrent
                      writers (including other processes) are serialized
                      for the whole block, reads included.
        """
        with self._db_connection() as conn:
            conn.isolation_level = None
            conn.execute("BEGIN EXCLUSIVE" if exclusive else "BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._db_connection() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS app_user (
                    user_id TEXT PRIMARY KEY,
                    username TEXT NOT NULL,
                    email TEXT,
                    role TEXT NOT NULL DEFAULT 'user',
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS album (
                    album_id TEXT PRIMARY KEY,
                    artist TEXT,
                    album TEXT,
                    release_date TEXT,
                    country TEXT,
                    genre_1 TEXT,
                    genre_2 TEXT,
                    cover_image BLOB,
                    cover_image_format TEXT
                );

                CREATE TABLE IF NOT EXISTS user_list (
                    list_id TEXT PRIMARY KEY,
                    user_id TEXT NOT NULL REFERENCES app_user(user_id),
                    name TEXT NOT NULL,
                    year INTEGER,
                    is_main INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS list_item (
                    list_id TEXT NOT NULL REFERENCES user_list(list_id),
                    position INTEGER NOT NULL,
                    album_id TEXT,
                    artist TEXT,
                    album TEXT,
                    release_date TEXT,
                    country TEXT,
                    genre_1 TEXT,
                    genre_2 TEXT,
                    cover_image BLOB,
                    cover_image_format TEXT,
                    PRIMARY KEY (list_id, position)
                );

                CREATE TABLE IF NOT EXISTS aggregate_list (
                    year INTEGER PRIMARY KEY,
                    data TEXT NOT NULL,
                    stats TEXT NOT NULL,
                    revealed INTEGER NOT NULL DEFAULT 0,
                    revealed_at TEXT,
                    computed_at TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS aggregate_list_confirmation (
                    year INTEGER NOT NULL,
                    approver_user_id TEXT NOT NULL REFERENCES app_user(user_id),
                    confirmed_at TEXT NOT NULL,
                    PRIMARY KEY (year, approver_user_id)
                );

                CREATE TABLE IF NOT EXISTS aggregate_list_contributor (
                    year INTEGER NOT NULL,
                    user_id TEXT NOT NULL REFERENCES app_user(user_id),
                    added_by TEXT NOT NULL REFERENCES app_user(user_id),
                    added_at TEXT NOT NULL,
                    PRIMARY KEY (year, user_id)
                );

                CREATE TABLE IF NOT EXISTS aggregate_list_view (
                    year INTEGER NOT NULL,
                    user_id TEXT NOT NULL REFERENCES app_user(user_id),
                    viewed_at TEXT NOT NULL,
                    PRIMARY KEY (year, user_id)
                );

                CREATE INDEX IF NOT EXISTS idx_list_year_main ON user_list(year, is_main);
                CREATE INDEX IF NOT EXISTS idx_list_user ON user_list(user_id);
                CREATE INDEX IF NOT EXISTS idx_aggregate_revealed ON aggregate_list(revealed);
                CREATE INDEX IF NOT EXISTS idx_view_user ON aggregate_list_view(user_id);
                """
            )
            conn.commit()

    # Source lists

    def upsert_user(
        self,
        user_id: str,
        username: str,
        email: str | None = None,
        role: str = "user",
    ) -> None:
        """Upsert a user record."""
        with self._db_connection() as conn:
            conn.execute(
                """
                INSERT INTO app_user (user_id, username, email, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    username = excluded.username,
                    email = excluded.email,
                    role = excluded.role
                """,
                (user_id, username, email, role, _now()),
            )
            conn.commit()

    def get_user(self, user_id: str) -> dict[str, Any] | None:
        with self._db_connection() as conn:
            row = conn.execute(
                "SELECT user_id, username, email, role FROM app_user WHERE user_id = ?",
                (user_id,),
            ).fetchone()
            return dict(row) if row else None

    def upsert_album(
        self,
        album_id: str,
        artist: str,
        album: str,
        release_date: str | None = None,
        country: str | None = None,
        genre_1: str | None = None,
        genre_2: str | None = None,
        cover_image: bytes | None = None,
        cover_image_format: str | None = None,
    ) -> None:
        """Upsert canonical album metadata."""
        with self._db_connection() as conn:
            conn.execute(
                """
                INSERT INTO album
                    (album_id, artist, album, release_date, country, genre_1, genre_2,
                     cover_image, cover_image_format)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(album_id) DO UPDATE SET
                    artist = excluded.artist,
                    album = excluded.album,
                    release_date = excluded.release_date,
                    country = excluded.country,
                    genre_1 = excluded.genre_1,
                    genre_2 = excluded.genre_2,
                    cover_image = excluded.cover_image,
                    cover_image_format = excluded.cover_image_format
                """,
                (
                    album_id,
                    artist,
                    album,
                    release_date,
                    country,
                    genre_1,
                    genre_2,
                    cover_image,
                    cover_image_format,
                ),
            )
            conn.commit()

    def create_list(
        self,
        user_id: str,
        name: str,
        year: int | None,
        is_main: bool = False,
        list_id: str | None = None,
    ) -> str:
        """
        Create a user list.

        Returns the list_id.
        """
        if list_id is None:
            list_id = str(uuid.uuid4())
        with self._db_connection() as conn:
            conn.execute(
                """
                INSERT INTO user_list (list_id, user_id, name, year, is_main, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (list_id, user_id, name, year, 1 if is_main else 0, _now()),
            )
            conn.commit()
        return list_id

    def add_list_items(self, list_id: str, items: Iterable[dict[str, Any]]) -> int:
        """
        Insert items into a list in one transaction.

        Each item needs `position`; `album_id` and the metadata columns are
        optional. Empty metadata falls back to the album table when read.
        """
        rows = [
            (
                list_id,
                item["position"],
                item.get("album_id"),
                item.get("artist"),
                item.get("album"),
                item.get("release_date"),
                item.get("country"),
                item.get("genre_1"),
                item.get("genre_2"),
                item.get("cover_image"),
                item.get("cover_image_format"),
            )
            for item in items
        ]
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO list_item
                    (list_id, position, album_id, artist, album, release_date, country,
                     genre_1, genre_2, cover_image, cover_image_format)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )
        return len(rows)

    def fetch_main_lists(self, year: int) -> list[dict[str, Any]]:
        """Main lists for a year whose owners are approved contributors."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT l.list_id, l.user_id, u.username
                FROM user_list l
                JOIN app_user u ON l.user_id = u.user_id
                WHERE l.year = ? AND l.is_main = 1
                  AND l.user_id IN (
                      SELECT user_id FROM aggregate_list_contributor WHERE year = ?
                  )
                ORDER BY l.created_at, l.list_id
                """,
                (year, year),
            )
            return [dict(row) for row in cursor.fetchall()]

    def fetch_list_items(
        self, list_ids: Sequence[str], max_position: int = POINTS_CUTOFF
    ) -> list[dict[str, Any]]:
        """
        Items of the given lists up to `max_position`.

        Item metadata wins over album metadata unless it is empty. Rows are
        ordered by position, then list, so grouping is deterministic.
        """
        if not list_ids:
            return []

        placeholders = ", ".join("?" for _ in list_ids)
        with self._db_connection() as conn:
            cursor = conn.execute(
                f"""
                SELECT
                    li.list_id,
                    li.position,
                    li.album_id,
                    COALESCE(NULLIF(li.artist, ''), a.artist) AS artist,
                    COALESCE(NULLIF(li.album, ''), a.album) AS album,
                    COALESCE(NULLIF(li.release_date, ''), a.release_date) AS release_date,
                    COALESCE(NULLIF(li.country, ''), a.country) AS country,
                    COALESCE(NULLIF(li.genre_1, ''), a.genre_1) AS genre_1,
                    COALESCE(NULLIF(li.genre_2, ''), a.genre_2) AS genre_2,
                    COALESCE(li.cover_image, a.cover_image) AS cover_image,
                    COALESCE(NULLIF(li.cover_image_format, ''), a.cover_image_format)
                        AS cover_image_format,
                    l.user_id,
                    l.name AS list_name,
                    u.username
                FROM list_item li
                JOIN user_list l ON li.list_id = l.list_id
                JOIN app_user u ON l.user_id = u.user_id
                LEFT JOIN album a ON li.album_id = a.album_id
                WHERE li.list_id IN ({placeholders})
                  AND li.position <= ?
                ORDER BY li.position, l.created_at, li.list_id
                """,
                (*list_ids, max_position),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_years_with_main_lists(self) -> list[int]:
        """Years that have at least one main list, newest first."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT DISTINCT year FROM user_list
                WHERE is_main = 1 AND year IS NOT NULL
                ORDER BY year DESC
                """
            )
            return [row["year"] for row in cursor.fetchall()]

    # Aggregate records

    def save_aggregate(self, year: int, data: dict[str, Any], stats: dict[str, Any]) -> None:
        """
        Upsert the aggregate record for a year.

        Only data, stats and timestamps are replaced on update; the reveal
        columns keep whatever they held.
        """
        data_json = json.dumps(data, sort_keys=True)
        stats_json = json.dumps(stats, sort_keys=True)
        now = _now()

        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO aggregate_list
                    (year, data, stats, revealed, revealed_at, computed_at, created_at, updated_at)
                VALUES (?, ?, ?, 0, NULL, ?, ?, ?)
                ON CONFLICT(year) DO UPDATE SET
                    data = excluded.data,
                    stats = excluded.stats,
                    computed_at = excluded.computed_at,
                    updated_at = excluded.updated_at
                """,
                (year, data_json, stats_json, now, now, now),
            )

    def get_aggregate(self, year: int) -> dict[str, Any] | None:
        """Get the aggregate record for a year with data/stats decoded."""
        with self._db_connection() as conn:
            row = conn.execute("SELECT * FROM aggregate_list WHERE year = ?", (year,)).fetchone()
            if row is None:
                return None
            record = dict(row)
            record["data"] = json.loads(record["data"])
            record["stats"] = json.loads(record["stats"])
            record["revealed"] = bool(record["revealed"])
            return record

    def get_revealed_years(self) -> list[dict[str, Any]]:
        """Revealed years with their reveal time, newest first."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT year, revealed_at FROM aggregate_list
                WHERE revealed = 1
                ORDER BY year DESC
                """
            )
            return [dict(row) for row in cursor.fetchall()]

    # Reveal confirmations

    def get_confirmations(self, year: int) -> list[dict[str, Any]]:
        """Confirmations for a year in the order they were given."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT c.approver_user_id, c.confirmed_at, u.username
                FROM aggregate_list_confirmation c
                JOIN app_user u ON c.approver_user_id = u.user_id
                WHERE c.year = ?
                ORDER BY c.confirmed_at, c.approver_user_id
                """,
                (year,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def confirm_and_check_quorum(
        self, year: int, approver_user_id: str, required: int
    ) -> ConfirmationOutcome:
        """
        Record a confirmation and reveal the year once `required` distinct
        approvers have confirmed.

        Insert, recount and flip run in one exclusive transaction, so two
        approvers confirming at the same moment cannot both miss the quorum
        or both perform the flip.
        """
        now = _now()
        with self._transaction(exclusive=True) as conn:
            row = conn.execute(
                "SELECT revealed FROM aggregate_list WHERE year = ?", (year,)
            ).fetchone()
            if row is None:
                raise AggregateNotFoundError(f"No aggregate list for {year}")

            if row["revealed"]:
                count = self._count_confirmations(conn, year)
                return ConfirmationOutcome(
                    already_revealed=True,
                    inserted=False,
                    confirmation_count=count,
                    just_revealed=False,
                )

            cursor = conn.execute(
                """
                INSERT INTO aggregate_list_confirmation (year, approver_user_id, confirmed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(year, approver_user_id) DO NOTHING
                """,
                (year, approver_user_id, now),
            )
            inserted = cursor.rowcount > 0
            count = self._count_confirmations(conn, year)

            just_revealed = False
            if count >= required:
                cursor = conn.execute(
                    """
                    UPDATE aggregate_list
                    SET revealed = 1, revealed_at = ?, updated_at = ?
                    WHERE year = ? AND revealed = 0
                    """,
                    (now, now, year),
                )
                just_revealed = cursor.rowcount == 1

            return ConfirmationOutcome(
                already_revealed=False,
                inserted=inserted,
                confirmation_count=count,
                just_revealed=just_revealed,
            )

    def revoke_confirmation(self, year: int, approver_user_id: str) -> tuple[bool, bool]:
        """
        Remove an approver's confirmation unless the year is already revealed.

        Returns (already_revealed, removed).
        """
        with self._transaction(exclusive=True) as conn:
            row = conn.execute(
                "SELECT revealed FROM aggregate_list WHERE year = ?", (year,)
            ).fetchone()
            if row is not None and row["revealed"]:
                return True, False

            cursor = conn.execute(
                """
                DELETE FROM aggregate_list_confirmation
                WHERE year = ? AND approver_user_id = ?
                """,
                (year, approver_user_id),
            )
            return False, cursor.rowcount > 0

    @staticmethod
    def _count_confirmations(conn: sqlite3.Connection, year: int) -> int:
        row = conn.execute(
            """
            SELECT COUNT(DISTINCT approver_user_id) FROM aggregate_list_confirmation
            WHERE year = ?
            """,
            (year,),
        ).fetchone()
        return int(row[0])

    # Contributors

    def get_contributors(self, year: int) -> list[dict[str, Any]]:
        """Approved contributors for a year, most recently added first."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT
                    c.user_id,
                    c.added_at,
                    u.username,
                    u.email,
                    c.added_by,
                    a.username AS added_by_username
                FROM aggregate_list_contributor c
                JOIN app_user u ON c.user_id = u.user_id
                JOIN app_user a ON c.added_by = a.user_id
                WHERE c.year = ?
                ORDER BY c.added_at DESC, u.username
                """,
                (year,),
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_eligible_users(self, year: int) -> list[dict[str, Any]]:
        """Every user with a main list for the year, flagged if already contributing."""
        with self._db_connection() as conn:
            cursor = conn.execute(
                """
                SELECT
                    u.user_id,
                    u.username,
                    u.email,
                    l.list_id,
                    l.name AS list_name,
                    (SELECT COUNT(*) FROM list_item li WHERE li.list_id = l.list_id)
                        AS album_count,
                    EXISTS(
                        SELECT 1 FROM aggregate_list_contributor c
                        WHERE c.year = ? AND c.user_id = u.user_id
                    ) AS is_contributor
                FROM user_list l
                JOIN app_user u ON l.user_id = u.user_id
                WHERE l.year = ? AND l.is_main = 1
                ORDER BY u.username, l.list_id
                """,
                (year, year),
            )
            rows = [dict(row) for row in cursor.fetchall()]
        for row in rows:
            row["is_contributor"] = bool(row["is_contributor"])
        return rows

    def add_contributor(self, year: int, user_id: str, added_by: str) -> bool:
        """Add a contributor. Returns False if they already were one."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO aggregate_list_contributor (year, user_id, added_by, added_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(year, user_id) DO NOTHING
                """,
                (year, user_id, added_by, _now()),
            )
            return cursor.rowcount > 0

    def remove_contributor(self, year: int, user_id: str) -> bool:
        """Remove a contributor. Returns True if a row was deleted."""
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM aggregate_list_contributor WHERE year = ? AND user_id = ?",
                (year, user_id),
            )
            return cursor.rowcount > 0

    def set_contributors(self, year: int, user_ids: Sequence[str], added_by: str) -> int:
        """
        Replace the contributor set for a year.

        Delete and insert share one transaction; on any error the previous
        set is left untouched. Returns the number of contributors stored.
        """
        unique_ids = list(dict.fromkeys(user_ids))
        now = _now()
        try:
            with self._transaction() as conn:
                conn.execute("DELETE FROM aggregate_list_contributor WHERE year = ?", (year,))
                conn.executemany(
                    """
                    INSERT INTO aggregate_list_contributor (year, user_id, added_by, added_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    [(year, user_id, added_by, now) for user_id in unique_ids],
                )
        except sqlite3.Error as e:
            logger.error(f"Error setting contributors for {year}: {e}")
            raise
        return len(unique_ids)

    # Reveal views

    def has_viewed(self, year: int, user_id: str) -> bool:
        with self._db_connection() as conn:
            row = conn.execute(
                "SELECT 1 FROM aggregate_list_view WHERE year = ? AND user_id = ?",
                (year, user_id),
            ).fetchone()
            return row is not None

    def mark_viewed(self, year: int, user_id: str) -> bool:
        """Record that a user has seen the reveal. Returns False if already marked."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO aggregate_list_view (year, user_id, viewed_at)
                VALUES (?, ?, ?)
                ON CONFLICT(year, user_id) DO NOTHING
                """,
                (year, user_id, _now()),
            )
            return cursor.rowcount > 0

    def reset_viewed(self, year: int, user_id: str) -> bool:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM aggregate_list_view WHERE year = ? AND user_id = ?",
                (year, user_id),
            )
            return cursor.rowcount > 0

    def get_viewed_years(self, user_id: str) -> list[int]:
        with self._db_connection() as conn:
            cursor = conn.execute(
                "SELECT year FROM aggregate_list_view WHERE user_id = ? ORDER BY year DESC",
                (user_id,),
            )
            return [row["year"] for row in cursor.fetchall()]
