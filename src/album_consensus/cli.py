"""CLI for album-consensus using Typer and Rich.

Admin tooling for yearly aggregate lists: recompute, preview, confirm the
reveal, manage contributors and audit duplicate albums.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from enum import StrEnum
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console

from album_consensus.aggregate_db import ADMIN_ROLE, AggregateDB, AggregateNotFoundError
from album_consensus.aggregate_list import (
    AggregateList,
    AggregateStatus,
    ConfirmationResult,
    InvalidYearError,
)
from album_consensus.audit import DuplicateAuditor
from album_consensus.config import Config
from album_consensus.console import (
    make_table,
    print_error,
    print_json,
    print_success,
    print_warning,
    set_console,
)
from album_consensus.console import (
    print as cprint,
)
from album_consensus.safe_logging import configure_rich_logging, configure_safe_logging

logger = logging.getLogger(__name__)


class OutputFormat(StrEnum):
    """Output format for CLI commands."""

    TEXT = "text"
    JSON = "json"


class ExitCode:
    """Standard exit codes for CLI commands."""

    SUCCESS = 0
    ERROR = 1
    NO_RESULTS = 2


app = typer.Typer(
    name="album-consensus",
    help="Album-consensus: yearly aggregate album lists with quorum-gated reveal",
    no_args_is_help=True,
    add_completion=False,
)

contributors_app = typer.Typer(help="Manage whose main lists count towards a year")
seen_app = typer.Typer(help="Track which users have been shown a revealed list")
audit_app = typer.Typer(help="Report duplicate albums in a year's source lists")

app.add_typer(contributors_app, name="contributors")
app.add_typer(seen_app, name="seen")
app.add_typer(audit_app, name="audit")


class AppState:
    """Global application state passed between commands."""

    config: Config
    output_format: OutputFormat
    verbose: int


state = AppState()

YearArg = Annotated[int, typer.Argument(help="Four-digit year")]
UserArg = Annotated[str, typer.Argument(help="User ID")]
RecomputeOpt = Annotated[
    bool, typer.Option("--recompute", help="Recompute the year's list afterwards")
]


@app.callback()
def main(
    config_path: Annotated[
        Path | None,
        typer.Option("--config", help="Path to configuration TOML file", exists=True),
    ] = None,
    db_path: Annotated[
        Path | None,
        typer.Option("--db", help="SQLite database path"),
    ] = None,
    output: Annotated[
        OutputFormat,
        typer.Option("--output", "-o", help="Output format"),
    ] = OutputFormat.TEXT,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity"),
    ] = 0,
) -> None:
    """Album-consensus: yearly aggregate album lists with quorum-gated reveal."""
    # Load config (TOML + env vars)
    cfg = Config.load(config_path)

    # CLI > Env > Config File > Defaults
    if db_path:
        cfg.database.path = db_path

    if verbose > 0:
        log_level = logging.DEBUG if verbose >= 2 else logging.INFO
    else:
        log_level = getattr(logging, cfg.logging.level.upper(), logging.WARNING)

    if cfg.logging.rich:
        configure_rich_logging(
            level=log_level,
            sanitize_messages=cfg.logging.sanitize_messages,
            show_time=True,
            show_path=False,
        )
    else:
        configure_safe_logging(
            level=log_level,
            format_string=cfg.logging.format,
            sanitize_messages=cfg.logging.sanitize_messages,
        )
    set_console(Console(highlight=False))

    if config_path:
        logger.info(f"Loaded config from {config_path}")
    logger.debug(
        f"Logging configured: level={logging.getLevelName(log_level)}, "
        f"database={cfg.database.path}"
    )

    state.config = cfg
    state.output_format = output
    state.verbose = verbose


def _aggregate_list() -> AggregateList:
    return AggregateList(AggregateDB(state.config.database.path))


def _json_output() -> bool:
    return state.output_format == OutputFormat.JSON


@contextmanager
def _handle_errors() -> Iterator[None]:
    """Turn expected failures into an error message and a non-zero exit."""
    try:
        yield
    except InvalidYearError as e:
        print_error(str(e))
        raise typer.Exit(code=ExitCode.ERROR) from e
    except AggregateNotFoundError as e:
        print_error(str(e))
        raise typer.Exit(code=ExitCode.NO_RESULTS) from e
    except sqlite3.IntegrityError as e:
        # Unknown user ids surface as foreign key failures
        print_error(f"Rejected by database: {e}")
        raise typer.Exit(code=ExitCode.ERROR) from e


def _require_admin(agg: AggregateList, user_id: str) -> None:
    """Exit with an error unless the user exists and has the admin role."""
    user = agg.db.get_user(user_id)
    if user is None:
        print_error(f"Unknown user: {user_id}")
        raise typer.Exit(code=ExitCode.ERROR)
    if user["role"] != ADMIN_ROLE:
        print_error(f"User {user_id} is not an admin")
        raise typer.Exit(code=ExitCode.ERROR)


def _print_albums(year: int, albums: list[dict[str, Any]], title_suffix: str = "") -> None:
    rows = [
        (
            a["rank"],
            a["artist"],
            a["album"],
            a["total_points"],
            a["voter_count"],
            f"{a['average_position']:.2f}",
        )
        for a in albums
    ]
    cprint(
        make_table(
            f"Aggregate list {year}{title_suffix}",
            ["Rank", "Artist", "Album", "Points", "Voters", "Avg pos"],
            rows,
            right_align=["Rank", "Points", "Voters", "Avg pos"],
        )
    )


def _print_status(status: AggregateStatus) -> None:
    cprint(f"[bold]Year {status.year}[/bold]: {status.state}")
    if not status.exists:
        return
    cprint(f"  Computed at: {status.computed_at}")
    cprint(f"  Albums: {status.total_albums}")
    cprint(f"  Confirmations: {status.confirmation_count}/{status.required_confirmations}")
    for confirmation in status.confirmations:
        cprint(f"    - {confirmation.approver_name} at {confirmation.confirmed_at}")
    if status.revealed:
        cprint(f"  Revealed at: {status.revealed_at}")


def _report_confirmation(result: ConfirmationResult, action: str) -> None:
    if _json_output():
        print_json(
            {
                "status": result.status.to_dict(),
                "already_revealed": result.already_revealed,
                "just_revealed": result.just_revealed,
                "changed": result.changed,
            }
        )
        return

    if result.already_revealed:
        print_warning(f"Year {result.status.year} is already revealed; {action} ignored")
    elif result.just_revealed:
        print_success(f"Year {result.status.year} has been revealed")
    elif result.changed:
        print_success(f"{action.capitalize()} recorded")
    else:
        print_warning(f"Nothing to {action}")
    _print_status(result.status)


# ====================================================================
# AGGREGATE COMMANDS
# ====================================================================


@app.command()
def recompute(year: YearArg) -> None:
    """Recompute and store the aggregate list for a year."""
    with _handle_errors():
        record = _aggregate_list().recompute(year)

    if _json_output():
        print_json({"year": record.year, "computed_at": record.computed_at, "stats": record.stats})
    else:
        print_success(
            f"Recomputed {year}: {record.stats.get('total_albums', 0)} albums from "
            f"{record.stats.get('participant_count', 0)} participants"
        )


@app.command()
def show(
    year: YearArg,
    admin: Annotated[
        bool, typer.Option("--admin", help="Show the stored list even if not revealed")
    ] = False,
) -> None:
    """Show a year's aggregate list. Only revealed years unless --admin."""
    with _handle_errors():
        agg = _aggregate_list()
        if admin:
            record = agg.get(year)
            data = record.data if record else None
            revealed = record.revealed if record else False
        else:
            data = agg.get_revealed(year)
            revealed = data is not None

    if data is None:
        print_warning(
            f"No aggregate list for {year}" if admin else f"Aggregate list for {year} is not revealed"
        )
        raise typer.Exit(code=ExitCode.NO_RESULTS)

    if _json_output():
        print_json(data)
    else:
        _print_albums(year, data.get("albums", []), "" if revealed else " (not revealed)")


@app.command()
def status(year: YearArg) -> None:
    """Show reveal state and confirmations for a year."""
    with _handle_errors():
        result = _aggregate_list().get_status(year)

    if _json_output():
        print_json(result.to_dict())
    else:
        _print_status(result)


@app.command()
def stats(year: YearArg) -> None:
    """Show list statistics, computing the year first if needed."""
    with _handle_errors():
        result = _aggregate_list().get_stats_for_preview(year)

    if _json_output():
        print_json(result)
        return

    cprint(f"[bold]Stats for {year}[/bold]")
    cprint(f"  Participants: {result['participant_count']}")
    cprint(f"  Albums: {result['total_albums']}")
    cprint(f"  With 3+ voters: {result['albums_with_3_plus_voters']}")
    cprint(f"  With 2 voters: {result['albums_with_2_voters']}")
    cprint(f"  With 1 voter: {result['albums_with_1_voter']}")
    if result["top_points_distribution"]:
        top = ", ".join(str(p) for p in result["top_points_distribution"])
        cprint(f"  Top points: {top}")


@app.command()
def confirm(
    year: YearArg,
    approver: Annotated[str, typer.Argument(help="Approving admin's user ID")],
) -> None:
    """Confirm the reveal of a year. Two distinct approvers reveal it."""
    agg = _aggregate_list()
    _require_admin(agg, approver)
    with _handle_errors():
        result = agg.add_confirmation(year, approver)
    _report_confirmation(result, "confirmation")


@app.command()
def revoke(
    year: YearArg,
    approver: Annotated[str, typer.Argument(help="Approving admin's user ID")],
) -> None:
    """Withdraw a reveal confirmation. Has no effect once revealed."""
    agg = _aggregate_list()
    _require_admin(agg, approver)
    with _handle_errors():
        result = agg.remove_confirmation(year, approver)
    _report_confirmation(result, "revocation")


@app.command()
def years() -> None:
    """List revealed years and years that have main lists."""
    agg = _aggregate_list()
    revealed = agg.get_revealed_years()
    with_lists = agg.get_years_with_main_lists()

    if _json_output():
        print_json({"revealed": revealed, "with_main_lists": with_lists})
        return

    revealed_by_year = {r["year"]: r["revealed_at"] for r in revealed}
    all_years = sorted(set(with_lists) | set(revealed_by_year), reverse=True)
    if not all_years:
        print_warning("No years found")
        raise typer.Exit(code=ExitCode.NO_RESULTS)
    cprint(
        make_table(
            "Years",
            ["Year", "Main lists", "Revealed at"],
            [
                (y, "yes" if y in with_lists else "no", revealed_by_year.get(y))
                for y in all_years
            ],
        )
    )


# ====================================================================
# CONTRIBUTOR COMMANDS
# ====================================================================


@contributors_app.command("list")
def contributors_list(year: YearArg) -> None:
    """List approved contributors for a year."""
    with _handle_errors():
        contributors = _aggregate_list().get_contributors(year)

    if _json_output():
        print_json(contributors)
        return
    if not contributors:
        print_warning(f"No contributors for {year}")
        return
    cprint(
        make_table(
            f"Contributors {year}",
            ["User ID", "Username", "Added by", "Added at"],
            [
                (c["user_id"], c["username"], c["added_by_username"], c["added_at"])
                for c in contributors
            ],
        )
    )


@contributors_app.command("eligible")
def contributors_eligible(year: YearArg) -> None:
    """List users with a main list for the year."""
    with _handle_errors():
        users = _aggregate_list().get_eligible_users(year)

    if _json_output():
        print_json(users)
        return
    if not users:
        print_warning(f"No main lists for {year}")
        return
    cprint(
        make_table(
            f"Eligible users {year}",
            ["User ID", "Username", "List", "Albums", "Contributor"],
            [
                (
                    u["user_id"],
                    u["username"],
                    u["list_name"],
                    u["album_count"],
                    "yes" if u["is_contributor"] else "no",
                )
                for u in users
            ],
            right_align=["Albums"],
        )
    )


@contributors_app.command("add")
def contributors_add(
    year: YearArg,
    user_id: UserArg,
    added_by: Annotated[str, typer.Option("--by", help="Admin user ID making the change")],
    recompute: RecomputeOpt = False,
) -> None:
    """Approve a user's main list for a year."""
    with _handle_errors():
        added = _aggregate_list().add_contributor(year, user_id, added_by, recompute=recompute)

    if _json_output():
        print_json({"year": year, "user_id": user_id, "added": added})
    elif added:
        print_success(f"Added {user_id} as contributor for {year}")
    else:
        print_warning(f"{user_id} is already a contributor for {year}")


@contributors_app.command("remove")
def contributors_remove(
    year: YearArg,
    user_id: UserArg,
    recompute: RecomputeOpt = False,
) -> None:
    """Withdraw a user's approval for a year."""
    with _handle_errors():
        removed = _aggregate_list().remove_contributor(year, user_id, recompute=recompute)

    if _json_output():
        print_json({"year": year, "user_id": user_id, "removed": removed})
    elif removed:
        print_success(f"Removed {user_id} as contributor for {year}")
    else:
        print_warning(f"{user_id} was not a contributor for {year}")


@contributors_app.command("set")
def contributors_set(
    year: YearArg,
    user_ids: Annotated[list[str], typer.Argument(help="User IDs forming the new set")],
    added_by: Annotated[str, typer.Option("--by", help="Admin user ID making the change")],
    recompute: RecomputeOpt = False,
) -> None:
    """Replace the whole contributor set for a year."""
    with _handle_errors():
        count = _aggregate_list().set_contributors(year, user_ids, added_by, recompute=recompute)

    if _json_output():
        print_json({"year": year, "contributor_count": count})
    else:
        print_success(f"Set {count} contributors for {year}")


# ====================================================================
# SEEN COMMANDS
# ====================================================================


@seen_app.command("check")
def seen_check(year: YearArg, user_id: UserArg) -> None:
    """Report whether a user has been shown the reveal."""
    with _handle_errors():
        seen = _aggregate_list().has_seen(year, user_id)

    if _json_output():
        print_json({"year": year, "user_id": user_id, "seen": seen})
    else:
        cprint(f"{user_id} has {'seen' if seen else 'not seen'} the {year} reveal")


@seen_app.command("mark")
def seen_mark(year: YearArg, user_id: UserArg) -> None:
    """Mark the reveal as shown to a user."""
    with _handle_errors():
        marked = _aggregate_list().mark_seen(year, user_id)

    if _json_output():
        print_json({"year": year, "user_id": user_id, "marked": marked})
    elif marked:
        print_success(f"Marked {year} reveal as seen by {user_id}")
    else:
        print_warning(f"{user_id} had already seen the {year} reveal")


@seen_app.command("reset")
def seen_reset(year: YearArg, user_id: UserArg) -> None:
    """Clear a user's seen marker so the reveal plays again."""
    with _handle_errors():
        reset = _aggregate_list().reset_seen(year, user_id)

    if _json_output():
        print_json({"year": year, "user_id": user_id, "reset": reset})
    elif reset:
        print_success(f"Reset {year} reveal for {user_id}")
    else:
        print_warning(f"{user_id} had not seen the {year} reveal")


@seen_app.command("years")
def seen_years(user_id: UserArg) -> None:
    """List the years whose reveal a user has seen."""
    viewed = _aggregate_list().get_viewed_years(user_id)

    if _json_output():
        print_json({"user_id": user_id, "years": viewed})
    elif viewed:
        cprint(", ".join(str(y) for y in viewed))
    else:
        print_warning(f"{user_id} has not seen any reveal")


# ====================================================================
# AUDIT COMMANDS
# ====================================================================


@audit_app.command("duplicates")
def audit_duplicates(year: YearArg) -> None:
    """Albums that appear under more than one album ID."""
    with _handle_errors():
        report = DuplicateAuditor(_aggregate_list()).find_duplicates(year)

    if _json_output():
        result = asdict(report)
        result["duplicate_groups"] = report.duplicate_groups
        print_json(result)
        return

    cprint(
        f"Scanned {report.total_entries_scanned} entries, "
        f"{report.unique_albums} unique albums, {report.duplicate_groups} with multiple IDs"
    )
    for group in report.duplicates:
        cprint(f"\n[bold]{group.artist} - {group.album}[/bold]")
        cprint(f"  Canonical ID: {group.canonical_album_id}")
        cprint(
            make_table(
                None,
                ["Album ID", "Position", "User", "List"],
                [(e.album_id, e.position, e.username, e.list_name) for e in group.entries],
                right_align=["Position"],
            )
        )


@audit_app.command("near")
def audit_near(
    year: YearArg,
    threshold: Annotated[
        float, typer.Option("--threshold", min=0, max=100, help="Minimum similarity (0-100)")
    ] = 90.0,
) -> None:
    """Distinct albums whose names are nearly identical."""
    with _handle_errors():
        pairs = DuplicateAuditor(_aggregate_list()).find_near_duplicates(year, threshold)

    if _json_output():
        print_json([asdict(p) for p in pairs])
        return
    if not pairs:
        print_success(f"No near-duplicates at threshold {threshold}")
        return
    cprint(
        make_table(
            f"Near-duplicates {year}",
            ["Score", "Album A", "Album B"],
            [(f"{p.score:.1f}", p.display_a, p.display_b) for p in pairs],
            right_align=["Score"],
        )
    )


# ====================================================================
# ENTRY POINT
# ====================================================================


def cli() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli()
