# main.py

import argparse
import logging

from condor_stats.database import Database
from condor_stats.reports import StatsService
from condor_stats.thresholds import (
    DEFAULT_LEADERBOARD_LIMIT,
    DEFAULT_LEADERBOARD_METRIC,
    LEADERBOARD_METRICS,
    PERIODS,
    load_settings,
)
from condor_stats.ui import TerminalUI
from condor_stats.validation import MemberNotFoundError, ValidationError


def _add_window_args(parser: argparse.ArgumentParser, events: bool = False) -> None:
    parser.add_argument("--period", choices=PERIODS, default=None, help="Time window")
    parser.add_argument("--days", type=int, default=None, help="Last N days (1-365)")
    parser.add_argument("--week-offset", type=int, default=None, help="Weeks back with --period week")
    if events:
        parser.add_argument("--events", type=int, default=None, help="Last N matches played")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Legion Condor clan statistics")
    parser.add_argument("--db", default="", help="SQLite DB path (defaults to CONDOR_DB_PATH or data/condor.db)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("leaderboard", "Leaderboard over all competitive matches"),
                            ("condor", "Leaderboard over Condor-qualified matches")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--metric", choices=LEADERBOARD_METRICS, default=DEFAULT_LEADERBOARD_METRIC)
        p.add_argument("--limit", type=int, default=DEFAULT_LEADERBOARD_LIMIT)
        _add_window_args(p)

    p = sub.add_parser("weekly", help="Weekly Condor ascenso ranking")
    p.add_argument("--week-offset", type=int, default=0)
    p.add_argument("--limit", type=int, default=DEFAULT_LEADERBOARD_LIMIT)

    p = sub.add_parser("myrank", help="Personal rank card")
    p.add_argument("discord_id")
    _add_window_args(p, events=True)

    p = sub.add_parser("last-events", help="Per-match breakdown of recent matches")
    p.add_argument("discord_id")
    p.add_argument("--events", type=int, default=None)
    p.add_argument("--days", type=int, default=None)

    p = sub.add_parser("gulag", help="Inactive members")
    p.add_argument("--inactivity-days", type=int, default=None)

    sub.add_parser("members", help="Full roster report")

    p = sub.add_parser("matches", help="Matches with Condor-qualified members")
    _add_window_args(p)
    return parser


def run(args: argparse.Namespace, service: StatsService, ui: TerminalUI) -> None:
    if args.command in ("leaderboard", "condor"):
        payload = service.leaderboard(
            metric=args.metric,
            period=args.period,
            days=args.days,
            week_offset=args.week_offset,
            limit=args.limit,
            qualified=args.command == "condor",
        )
        ui.show_leaderboard(payload)
    elif args.command == "weekly":
        ui.show_leaderboard(service.weekly_scores(week_offset=args.week_offset, limit=args.limit))
    elif args.command == "myrank":
        ui.show_rank_card(service.my_rank(
            args.discord_id,
            period=args.period,
            days=args.days,
            events=args.events,
            week_offset=args.week_offset,
        ))
    elif args.command == "last-events":
        ui.show_last_events(service.last_events(args.discord_id, events=args.events, days=args.days))
    elif args.command == "gulag":
        ui.show_gulag(service.gulag(threshold_days=args.inactivity_days))
    elif args.command == "members":
        ui.show_members_report(service.members_report())
    elif args.command == "matches":
        ui.show_matches(service.qualified_matches(
            period=args.period, days=args.days, week_offset=args.week_offset
        ))


def main() -> int:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    ui = TerminalUI()
    try:
        settings = load_settings(args.db.strip() or None)
    except ValueError as e:
        ui.show_error(str(e))
        return 2

    db = Database(settings.db_path)
    try:
        run(args, StatsService(db, settings=settings), ui)
    except ValidationError as e:
        ui.show_error(f"Invalid {e.field}: {e.message}")
        return 2
    except MemberNotFoundError as e:
        ui.show_error(str(e))
        return 1
    except RuntimeError as e:
        ui.show_error(str(e))
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
