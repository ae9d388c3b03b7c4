from __future__ import annotations

import argparse
import logging
import sys
import threading

from idlecore.config import GameConfig, load_config
from idlecore.errors import IdleCoreError
from idlecore.events import (
    AchievementUnlocked,
    BuildingBought,
    BuildingSold,
    EventBus,
    Prestige,
    UpgradeBought,
)
from idlecore.persistence import InMemoryDatabase, JSONFileDatabase
from idlecore.scheduler import UpdateScheduler
from idlecore.service import CommandResult, GameService
from idlecore.simulator import GameSimulator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="idlecore",
        description="idlecore: data-driven idle game economy",
    )
    parser.add_argument("--config", required=True, help="YAML game config")
    parser.add_argument(
        "--data-dir", default="players", help="Directory of player JSON files"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    run = sub.add_parser("run", help="Run the update scheduler over every stored player")
    run.add_argument("--ticks", type=int, default=None, help="Stop after N ticks")

    sim = sub.add_parser("simulate", help="Simulate offline progress for fresh players")
    sim.add_argument("--players", type=int, default=1, help="Number of players")
    sim.add_argument("--days", type=int, default=7, help="Days to simulate")
    sim.add_argument("--seed", type=int, default=None, help="Random seed")
    sim.add_argument("--plot", default=None, help="Plot output path (PNG)")

    new = sub.add_parser("new-player", help="Register a player")
    new.add_argument("player_id")

    for name, help_text in (("buy", "Buy an upgrade or building"), ("sell", "Sell a building")):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("player_id")
        cmd.add_argument("key")

    prestige = sub.add_parser("prestige", help="Perform a prestige reset")
    prestige.add_argument("player_id")

    status = sub.add_parser("status", help="Show a player's status")
    status.add_argument("player_id")

    sub.add_parser("validate", help="Check the catalog for broken references")

    return parser


def print_events(bus: EventBus) -> None:
    """Echo every economy event to stdout."""
    bus.on(BuildingBought, lambda e: print(
        f"Player {e.player_id} bought building {e.building_name}. Amount: {e.amount}"
    ))
    bus.on(UpgradeBought, lambda e: print(
        f"Player {e.player_id} bought upgrade {e.upgrade_name}"
    ))
    bus.on(BuildingSold, lambda e: print(
        f"Player {e.player_id} sold building {e.building_name}. Amount: {e.amount}"
    ))
    bus.on(Prestige, lambda e: print(
        f"Player {e.player_id} performed prestige. New level: {e.prestige_level}"
    ))
    bus.on(AchievementUnlocked, lambda e: print(
        f"Player {e.player_id} unlocked achievement: {e.achievement_name} (level {e.level})"
    ))


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
        if args.command == "validate":
            _validate(config)
            return
        if args.command == "simulate":
            _simulate(config, args)
            return

        events = EventBus()
        print_events(events)
        service = GameService.from_config(
            config, JSONFileDatabase(args.data_dir), events=events
        )
        if args.command == "run":
            _run(config, service, args.ticks)
        elif args.command == "new-player":
            _report(service.create_player(args.player_id))
        elif args.command == "buy":
            _report(service.buy(args.player_id, args.key))
        elif args.command == "sell":
            _report(service.sell(args.player_id, args.key))
        elif args.command == "prestige":
            _report(service.perform_prestige(args.player_id))
        elif args.command == "status":
            print(service.status(args.player_id))
    except IdleCoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)


def _report(result: CommandResult) -> None:
    print(result.message)
    if not result.success:
        sys.exit(1)


def _validate(config: GameConfig) -> None:
    errors = config.validate()
    if not errors:
        print(f"{config.engine.name}: catalog OK")
        return
    for error in errors:
        print(f"  - {error}")
    sys.exit(1)


def _run(config: GameConfig, service: GameService, ticks: int | None) -> None:
    stop = threading.Event()
    with UpdateScheduler(
        service.economy,
        service.database,
        max_workers=config.engine.max_workers,
        interval=config.engine.tick_interval,
        locks=service.locks,
    ) as scheduler:
        try:
            scheduler.run(stop, max_ticks=ticks)
        except KeyboardInterrupt:
            stop.set()
            logger.info("Interrupted; stopping scheduler")


def _simulate(config: GameConfig, args: argparse.Namespace) -> None:
    service = GameService.from_config(config, InMemoryDatabase())
    simulator = GameSimulator(service.economy, seed=args.seed)
    reports = simulator.run(args.players, args.days)
    for player_id, report in reports.items():
        print(f"{player_id} after {report.days} day(s), {report.total_purchases} purchase(s):")
        for resource, amount in sorted(report.final_resources.items()):
            print(f"  {resource}: {amount}")

    if args.plot and reports:
        from idlecore.visualization import plot_simulation

        plot_simulation(next(iter(reports.values())), args.plot)
        print(f"\nPlot saved to {args.plot}")
