__all__ = (
    "Config",
    # Scoring and keys
    "POSITION_POINTS",
    "SCORING_VERSION",
    "points_for_position",
    "Normalizer",
    "build_album_key",
    # Aggregation
    "RawEntry",
    "AlbumAggregate",
    "aggregate",
    "RankedAlbum",
    "rank",
    "AggregateStats",
    "compute_stats",
    # Storage and reveal workflow
    "AggregateDB",
    "AggregateNotFoundError",
    "AggregateList",
    "AggregateRecord",
    "AggregateStatus",
    "ConfirmationResult",
    "InvalidYearError",
    "RevealState",
    # Audit
    "AuditReport",
    "DuplicateAuditor",
    "select_canonical_album_id",
)

from album_consensus.aggregate_db import AggregateDB, AggregateNotFoundError
from album_consensus.aggregate_list import (
    AggregateList,
    AggregateRecord,
    AggregateStatus,
    ConfirmationResult,
    InvalidYearError,
    RevealState,
)
from album_consensus.aggregator import AlbumAggregate, RawEntry, aggregate
from album_consensus.audit import AuditReport, DuplicateAuditor, select_canonical_album_id
from album_consensus.config import Config
from album_consensus.keys import build_album_key
from album_consensus.normalize import Normalizer
from album_consensus.ranker import RankedAlbum, rank
from album_consensus.scoring import POSITION_POINTS, SCORING_VERSION, points_for_position
from album_consensus.stats import AggregateStats, compute_stats
