"""CLI entry point for the InnSync calendar engine."""

import argparse
import asyncio
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from availability.aggregator import occupancy_rate
from config import EngineConfig, SecretsConfig, find_config_dir, load_config, load_secrets, load_yaml

logger = logging.getLogger(__name__)

EXAMPLE_CONFIG = """\
# InnSync calendar engine configuration
property_id: null
debounce_seconds: 0.5
poll_interval_seconds: 30
notification_limit: 50
calendar:
  default_view: week
  week_starts_on: sunday
  timeline_days: 30
  hidden_statuses: []
store:
  kind: sqlite
  db_path: null
"""

EXAMPLE_SECRETS = """\
# Credentials for the REST store (store.kind: rest)
rest:
  api_key: ""
"""


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not a YYYY-MM-DD date: {value}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="innsync-calendar",
        description="InnSync reservation calendar engine",
    )
    parser.add_argument(
        "--config-dir",
        type=str,
        help="Path to config directory",
    )
    parser.add_argument(
        "--db",
        type=str,
        help="SQLite database path (overrides store.db_path)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log engine activity to stderr",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # seed command
    seed_parser = subparsers.add_parser("seed", help="Load rooms and stays from a YAML file")
    seed_parser.add_argument("file", type=str, help="YAML file with 'rooms' and 'stays' lists")

    # grid command
    grid_parser = subparsers.add_parser("grid", help="Print the occupancy grid")
    grid_parser.add_argument(
        "--view",
        choices=["day", "week", "month", "timeline"],
        help="View type (default: calendar.default_view)",
    )
    grid_parser.add_argument(
        "--date",
        type=_date,
        help="Anchor date (default: today)",
    )

    # availability command
    avail_parser = subparsers.add_parser("availability", help="Show room availability")
    avail_parser.add_argument("--start", type=_date, required=True, help="First night")
    avail_parser.add_argument("--end", type=_date, required=True, help="Departure date (exclusive)")
    avail_parser.add_argument("--json", action="store_true", help="Print JSON")

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show reservation statistics")
    stats_parser.add_argument("--start", type=_date, required=True, help="Range start")
    stats_parser.add_argument("--end", type=_date, required=True, help="Range end")
    stats_parser.add_argument("--json", action="store_true", help="Print JSON")

    # move command
    move_parser = subparsers.add_parser("move", help="Move a stay between grid cells")
    move_parser.add_argument("stay_id", type=str, help="Stay ID")
    move_parser.add_argument(
        "--from",
        dest="source",
        type=str,
        required=True,
        help="Source cell, e.g. cell|R101|2025-08-18",
    )
    move_parser.add_argument(
        "--to",
        dest="destination",
        type=str,
        required=True,
        help="Destination cell, e.g. cell|R102|2025-08-20",
    )
    move_parser.add_argument("--check-out", type=_date, help="Explicit new check-out date")

    # status command
    status_parser = subparsers.add_parser("status", help="Change a stay's status")
    status_parser.add_argument("stay_id", type=str, help="Stay ID")
    status_parser.add_argument(
        "status",
        choices=["pending", "confirmed", "checked_in", "checked_out", "cancelled", "no_show"],
    )

    # export command
    export_parser = subparsers.add_parser("export", help="Export stays")
    export_parser.add_argument(
        "--format",
        choices=["csv", "tsv", "ics"],
        default="csv",
        help="Output format (default: csv)",
    )
    export_parser.add_argument("--start", type=_date, required=True, help="Range start")
    export_parser.add_argument("--end", type=_date, required=True, help="Range end (exclusive)")
    export_parser.add_argument("--output", "-o", type=str, help="Write to file instead of stdout")

    # config command
    config_parser = subparsers.add_parser("config", help="Configuration utilities")
    config_subparsers = config_parser.add_subparsers(dest="config_action", help="Config action")
    config_subparsers.add_parser("validate", help="Validate configuration")
    init_parser = config_subparsers.add_parser("init", help="Create example config files")
    init_parser.add_argument(
        "--target",
        type=str,
        default="./config",
        help="Directory to create (default: ./config)",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.command == "config":
        if args.config_action is None:
            parser.parse_args(["config", "--help"])
        sys.exit(run_config_command(args))

    sys.exit(asyncio.run(run(args)))


def _load_settings(args: argparse.Namespace) -> tuple[EngineConfig, SecretsConfig]:
    config_dir = Path(args.config_dir) if args.config_dir else find_config_dir()
    config = load_config(config_dir)
    secrets = load_secrets(config_dir)
    if args.db:
        config.store.kind = "sqlite"
        config.store.db_path = args.db
    return config, secrets


async def open_store(config: EngineConfig, secrets: SecretsConfig) -> Any:
    """Create and initialize the configured stay record store."""
    if config.store.kind == "rest":
        from services.rest_store import RestStayStore

        return RestStayStore(
            base_url=config.store.base_url,
            api_key=secrets.rest.get("api_key"),
            timeout=config.fetch_timeout,
        )

    from persistence import SqliteStayStore

    store = SqliteStayStore(config.store.db_path)
    await store.initialize()
    return store


async def run(args: argparse.Namespace) -> int:
    """Run a store-backed command and return the exit code."""
    try:
        config, secrets = _load_settings(args)
    except Exception as e:
        logger.error(f"Failed to load configuration: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    store = await open_store(config, secrets)
    try:
        if args.command == "seed":
            return await run_seed(store, args)
        return await run_engine_command(store, config, args)
    finally:
        await store.close()


async def run_seed(store: Any, args: argparse.Namespace) -> int:
    """Load rooms and stays into a SQLite store."""
    from models.room import Room
    from models.stay import Stay

    if not hasattr(store, "add_stay"):
        print("Seeding is only supported for the sqlite store", file=sys.stderr)
        return 1

    data = load_yaml(Path(args.file))
    rooms = [Room.from_record(record) for record in data.get("rooms", [])]
    stays = [Stay.from_record(record) for record in data.get("stays", [])]
    for room in rooms:
        await store.add_room(room)
    for stay in stays:
        await store.add_stay(stay)
    print(f"Loaded {len(rooms)} rooms and {len(stays)} stays")
    return 0


async def run_engine_command(store: Any, config: EngineConfig, args: argparse.Namespace) -> int:
    """Run a command that needs the calendar engine."""
    from engine.manager import CalendarEngine
    from models.window import ViewType, build_window
    from utils.errors import FetchError

    anchor = getattr(args, "date", None) or getattr(args, "start", None)
    engine = CalendarEngine(store, config=config, today=anchor)
    engine.retry_delay = 0.1

    try:
        if args.command == "grid":
            if args.view:
                await engine.set_view(ViewType(args.view), anchor)
            else:
                await engine.refresh()
            print(render_grid(engine))

        elif args.command == "availability":
            results = await engine.availability(args.start, args.end)
            if args.json:
                print(json.dumps([r.to_dict() for r in results], indent=2))
            else:
                for result in results:
                    state = "available" if result.is_available else f"{result.reservation_count} stay(s)"
                    print(f"Room {result.room.number:<8} {state}")

        elif args.command == "stats":
            result = await engine.stats_for(args.start, args.end)
            if args.json:
                print(json.dumps(result.to_dict(), indent=2))
            else:
                print(render_stats(result))

        elif args.command == "move":
            from reschedule.protocol import CellRef

            source = CellRef.parse(args.source)
            await engine.set_window(build_window(ViewType.DAY, source.day))
            outcome = await engine.propose_move(
                args.stay_id, source, args.destination, args.check_out
            )
            print(json.dumps(outcome.to_dict(), indent=2, default=str))
            return 0 if outcome.ok else 2

        elif args.command == "status":
            stay = await _find_stay(store, args.stay_id)
            if stay is None or stay.check_in is None:
                print(f"Stay {args.stay_id} not found", file=sys.stderr)
                return 2
            await engine.set_window(build_window(ViewType.DAY, stay.check_in))
            outcome = await engine.change_status(args.stay_id, args.status)
            print(json.dumps(outcome.to_dict(), indent=2, default=str))
            return 0 if outcome.ok else 2

        elif args.command == "export":
            return await run_export(engine, args)

    except FetchError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Invalid input: {e}", file=sys.stderr)
        return 1
    finally:
        await engine.stop()

    return 0


async def _find_stay(store: Any, stay_id: str) -> Any:
    if hasattr(store, "get_stay"):
        return await store.get_stay(stay_id)
    for stay in await store.fetch_stays():
        if stay.id == stay_id:
            return stay
    return None


async def run_export(engine: Any, args: argparse.Namespace) -> int:
    """Export stays overlapping the range."""
    from export import to_csv, to_icalendar, to_tsv
    from models.window import ViewWindow

    await engine.set_window(ViewWindow.from_range(args.start, args.end))
    stays = [s for s in engine.stays if s.overlaps(args.start, args.end)]
    renderers = {"csv": to_csv, "tsv": to_tsv, "ics": to_icalendar}
    content = renderers[args.format](stays, engine.rooms)

    if args.output:
        Path(args.output).write_text(content)
        print(f"Exported {len(stays)} stays to {args.output}")
    else:
        sys.stdout.write(content)
    return 0


def render_grid(engine: Any) -> str:
    """Render the engine's grid as text.

    ``[`` marks a check-in, ``=`` a stayover, ``|`` a changeover-only day and
    ``.`` a free night.
    """
    grid = engine.grid
    numbers = {room.id: room.number for room in engine.rooms}
    width = max([len(n) for n in numbers.values()] + [4])

    header = " " * width + " " + " ".join(d.strftime("%d") for d in grid.dates)
    lines = [header]
    for room_id in grid.room_ids:
        cells = []
        for day in grid.dates:
            placements = grid.cell(room_id, day)
            if any(p.is_check_in for p in placements):
                cells.append(" [")
            elif placements:
                cells.append("==")
            elif grid.checkouts(room_id, day):
                cells.append(" |")
            else:
                cells.append(" .")
        lines.append(f"{numbers.get(room_id, room_id):<{width}} " + " ".join(cells))

    lines.append(f"Occupancy: {occupancy_rate(grid):.0%}")
    for issue in grid.issues:
        lines.append(f"! stay {issue.stay_id}: {issue.detail}")
    return "\n".join(lines)


def render_stats(result: Any) -> str:
    lines = [
        f"Stays:      {result.total_stays}",
        f"Check-ins:  {result.check_ins}",
        f"Check-outs: {result.check_outs}",
        f"Guests:     {result.total_guests}",
        f"Revenue:    {result.total_revenue}",
    ]
    for status, count in sorted(result.status_counts.items(), key=lambda item: item[0].value):
        lines.append(f"  {status.label:<12} {count}")
    return "\n".join(lines)


def run_config_command(args: argparse.Namespace) -> int:
    """Run config commands."""
    if args.config_action == "validate":
        config_dir = Path(args.config_dir) if args.config_dir else find_config_dir()
        try:
            config = load_config(config_dir)
            load_secrets(config_dir)
        except Exception as e:
            print(f"Invalid configuration in {config_dir}: {e}", file=sys.stderr)
            return 1
        print(f"Configuration OK ({config_dir}): store={config.store.kind}")
        return 0

    if args.config_action == "init":
        target = Path(args.target)
        target.mkdir(parents=True, exist_ok=True)
        for name, content in (("config.yaml", EXAMPLE_CONFIG), ("secrets.yaml", EXAMPLE_SECRETS)):
            path = target / name
            if path.exists():
                print(f"Skipping {path} (already exists)")
                continue
            path.write_text(content)
            print(f"Created {path}")
        return 0

    return 1


if __name__ == "__main__":
    main()
