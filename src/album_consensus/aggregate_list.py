"""
Yearly aggregate list: recompute, reveal workflow and contributor registry.

Reveal states per year:

    NOT_COMPUTED -> COMPUTED -> REVEALED

REVEALED is terminal. Recompute refreshes data and stats in any state but
never touches the reveal columns, and nothing here can un-reveal a year.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from album_consensus.aggregate_db import AggregateDB, AggregateNotFoundError
from album_consensus.aggregator import RawEntry, aggregate
from album_consensus.normalize import Normalizer
from album_consensus.ranker import RankedAlbum, rank
from album_consensus.scoring import SCORING_VERSION
from album_consensus.stats import AggregateStats, compute_stats

logger = logging.getLogger(__name__)

REQUIRED_CONFIRMATIONS = 2

MIN_YEAR = 1000
MAX_YEAR = 9999


class InvalidYearError(ValueError):
    """Raised for years outside the supported four-digit range."""


class RevealState(StrEnum):
    """Reveal state of a year's aggregate list."""

    NOT_COMPUTED = "not_computed"
    COMPUTED = "computed"
    REVEALED = "revealed"


@dataclass
class AggregateRecord:
    """Persisted aggregate list for one year."""

    year: int
    data: dict[str, Any]
    stats: dict[str, Any]
    revealed: bool
    revealed_at: str | None
    computed_at: str
    created_at: str
    updated_at: str

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> AggregateRecord:
        return cls(
            year=row["year"],
            data=row["data"],
            stats=row["stats"],
            revealed=bool(row["revealed"]),
            revealed_at=row["revealed_at"],
            computed_at=row["computed_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @property
    def state(self) -> RevealState:
        return RevealState.REVEALED if self.revealed else RevealState.COMPUTED

    @property
    def albums(self) -> list[dict[str, Any]]:
        return self.data.get("albums", [])


@dataclass
class Confirmation:
    approver_user_id: str
    approver_name: str
    confirmed_at: str


@dataclass
class AggregateStatus:
    """Reveal status of a year as shown to admins."""

    year: int
    exists: bool
    state: RevealState
    revealed: bool = False
    revealed_at: str | None = None
    computed_at: str | None = None
    total_albums: int = 0
    confirmations: list[Confirmation] = field(default_factory=list)
    required_confirmations: int = REQUIRED_CONFIRMATIONS

    @property
    def confirmation_count(self) -> int:
        return len(self.confirmations)

    def to_dict(self) -> dict[str, Any]:
        result = asdict(self)
        result["state"] = str(self.state)
        result["confirmation_count"] = self.confirmation_count
        return result


@dataclass
class ConfirmationResult:
    """
    Outcome of a confirm or revoke call.

    `already_revealed` means the call was a no-op because the year was
    revealed before it ran. `just_revealed` is only true for the one call
    that flipped the year to revealed.
    """

    status: AggregateStatus
    already_revealed: bool = False
    just_revealed: bool = False
    changed: bool = False

    @property
    def revealed(self) -> bool:
        return self.status.revealed


@dataclass
class AggregationResult:
    """
    A computed but not yet persisted aggregate list.

    Timestamps are taken per computation: `data.generated_at`,
    `stats.computed_at` and the record's `computed_at` change on every
    recompute. Compare recomputes with those three fields left out; every
    other field is identical for unchanged source lists.
    """

    year: int
    participant_count: int
    albums: list[RankedAlbum]
    stats: AggregateStats
    generated_at: str

    def data_dict(self) -> dict[str, Any]:
        return {
            "year": self.year,
            "generated_at": self.generated_at,
            "participant_count": self.participant_count,
            "scoring_version": SCORING_VERSION,
            "albums": [album.to_dict() for album in self.albums],
        }


def validate_year(year: int) -> int:
    """Return the year if it is a four-digit integer, else raise InvalidYearError."""
    if isinstance(year, bool) or not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidYearError(f"Invalid year: {year!r}")
    return year


class AggregateList:
    """
    Operations on yearly aggregate lists.

    All state lives in the AggregateDB; instances hold no caches and are
    safe to create per request.
    """

    def __init__(self, db: AggregateDB, normalizer: Normalizer | None = None):
        self.db = db
        self.normalizer = normalizer or Normalizer()

    # Computation

    def aggregate_for_year(self, year: int) -> AggregationResult:
        """Read contributors' main lists and compute the ranked list without saving."""
        validate_year(year)
        logger.info(f"Aggregating list for year {year}")

        main_lists = self.db.fetch_main_lists(year)
        participant_count = len(main_lists)
        logger.info(f"Found {participant_count} main lists for year {year}")

        rows = self.db.fetch_list_items([lst["list_id"] for lst in main_lists])
        entries = [RawEntry.from_row(row) for row in rows]

        albums = rank(aggregate(year, entries, self.normalizer))
        stats = compute_stats(albums, participant_count, year)

        logger.info(
            f"Aggregate list for {year}: {len(albums)} albums from {participant_count} participants"
        )
        return AggregationResult(
            year=year,
            participant_count=participant_count,
            albums=albums,
            stats=stats,
            generated_at=datetime.now(UTC).isoformat(),
        )

    def recompute(self, year: int) -> AggregateRecord:
        """
        Recompute and store the aggregate list for a year.

        Everything is computed before the single upsert, so a failure
        leaves the previously stored record as it was.
        Only the timestamps differ between two recomputes of unchanged
        source lists (see AggregationResult).
        """
        logger.info(f"Recomputing aggregate list for year {year}")
        result = self.aggregate_for_year(year)
        self.db.save_aggregate(year, result.data_dict(), result.stats.to_dict())
        logger.info(f"Aggregate list for {year} recomputed successfully")

        record = self.get(year)
        if record is None:
            raise AggregateNotFoundError(f"Aggregate list for {year} missing after save")
        return record

    def get(self, year: int) -> AggregateRecord | None:
        """Stored record for a year, revealed or not. Admin view."""
        validate_year(year)
        row = self.db.get_aggregate(year)
        return AggregateRecord.from_row(row) if row else None

    def get_revealed(self, year: int) -> dict[str, Any] | None:
        """The list data if the year is revealed, otherwise None."""
        record = self.get(year)
        if record is None or not record.revealed:
            return None
        return record.data

    # Reveal workflow

    def get_status(self, year: int) -> AggregateStatus:
        record = self.get(year)
        if record is None:
            return AggregateStatus(year=year, exists=False, state=RevealState.NOT_COMPUTED)

        confirmations = [
            Confirmation(
                approver_user_id=row["approver_user_id"],
                approver_name=row["username"],
                confirmed_at=row["confirmed_at"],
            )
            for row in self.db.get_confirmations(year)
        ]
        return AggregateStatus(
            year=year,
            exists=True,
            state=record.state,
            revealed=record.revealed,
            revealed_at=record.revealed_at,
            computed_at=record.computed_at,
            total_albums=record.stats.get("total_albums", 0),
            confirmations=confirmations,
        )

    def add_confirmation(self, year: int, approver_user_id: str) -> ConfirmationResult:
        """
        Confirm the reveal of a year on behalf of an approver.

        A year that was never computed is computed first. Repeat
        confirmations from the same approver count once.
        """
        logger.info(f"Approver {approver_user_id} confirming reveal for year {year}")

        if self.get(year) is None:
            self.recompute(year)

        outcome = self.db.confirm_and_check_quorum(
            year, approver_user_id, REQUIRED_CONFIRMATIONS
        )

        if outcome.already_revealed:
            logger.info(f"Aggregate list for {year} already revealed; confirmation ignored")
        elif outcome.just_revealed:
            logger.info(
                f"Aggregate list for {year} has reached {outcome.confirmation_count} "
                "confirmations - revealing"
            )

        return ConfirmationResult(
            status=self.get_status(year),
            already_revealed=outcome.already_revealed,
            just_revealed=outcome.just_revealed,
            changed=outcome.inserted,
        )

    def remove_confirmation(self, year: int, approver_user_id: str) -> ConfirmationResult:
        """Withdraw an approver's confirmation. No-op once the year is revealed."""
        validate_year(year)
        logger.info(f"Approver {approver_user_id} revoking confirmation for year {year}")

        already_revealed, removed = self.db.revoke_confirmation(year, approver_user_id)
        return ConfirmationResult(
            status=self.get_status(year),
            already_revealed=already_revealed,
            changed=removed,
        )

    def get_stats(self, year: int) -> dict[str, Any] | None:
        record = self.get(year)
        return record.stats if record else None

    def get_stats_for_preview(self, year: int) -> dict[str, Any]:
        """Stats for the admin preview, computing the year first if needed."""
        record = self.get(year)
        if record is None:
            record = self.recompute(year)
        return record.stats

    def get_revealed_years(self) -> list[dict[str, Any]]:
        return self.db.get_revealed_years()

    def get_years_with_main_lists(self) -> list[int]:
        return self.db.get_years_with_main_lists()

    # Contributors

    def get_contributors(self, year: int) -> list[dict[str, Any]]:
        return self.db.get_contributors(validate_year(year))

    def get_eligible_users(self, year: int) -> list[dict[str, Any]]:
        return self.db.get_eligible_users(validate_year(year))

    def add_contributor(
        self, year: int, user_id: str, added_by: str, recompute: bool = False
    ) -> bool:
        """Approve a user's main list for the year. Returns False if already approved."""
        validate_year(year)
        logger.info(f"Adding user {user_id} as contributor for year {year}")
        added = self.db.add_contributor(year, user_id, added_by)
        if recompute:
            self.recompute(year)
        return added

    def remove_contributor(self, year: int, user_id: str, recompute: bool = False) -> bool:
        """Withdraw a user's approval. Returns True if they were a contributor."""
        validate_year(year)
        logger.info(f"Removing user {user_id} as contributor for year {year}")
        removed = self.db.remove_contributor(year, user_id)
        if recompute:
            self.recompute(year)
        return removed

    def set_contributors(
        self,
        year: int,
        user_ids: Sequence[str],
        added_by: str,
        recompute: bool = False,
    ) -> int:
        """Replace the whole contributor set for a year in one transaction."""
        validate_year(year)
        logger.info(f"Setting {len(user_ids)} contributors for year {year}")
        count = self.db.set_contributors(year, user_ids, added_by)
        if recompute:
            self.recompute(year)
        return count

    # Reveal views

    def has_seen(self, year: int, user_id: str) -> bool:
        return self.db.has_viewed(validate_year(year), user_id)

    def mark_seen(self, year: int, user_id: str) -> bool:
        """Mark the reveal as shown to a user. Marking twice is a no-op."""
        return self.db.mark_viewed(validate_year(year), user_id)

    def reset_seen(self, year: int, user_id: str) -> bool:
        """Clear a user's seen marker so the reveal is shown again."""
        validate_year(year)
        logger.info(f"Resetting reveal view for user {user_id}, year {year}")
        return self.db.reset_viewed(year, user_id)

    def get_viewed_years(self, user_id: str) -> list[int]:
        return self.db.get_viewed_years(user_id)
