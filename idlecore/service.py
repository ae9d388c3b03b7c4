"""Player-facing command surface over the economy and a player store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

from idlecore._sync import KeyedLock
from idlecore.cache import ExpirationCache
from idlecore.config import GameConfig
from idlecore.content import ContentPlugin
from idlecore.economy import EconomyEngine
from idlecore.errors import IdleCoreError, NotFoundError
from idlecore.events import EventBus
from idlecore.expression import ExpressionEngine
from idlecore.persistence import Database
from idlecore.state import PlayerState

logger = logging.getLogger(__name__)

HELP_TEXT = """\
Commands:
  status              Show balances, buildings and recent activity
  buy <key>           Buy one upgrade or building
  sell <key>          Sell one building for half its base cost
  prestige            Reset progress for a permanent prestige level
  resources           List every resource in the catalog
  buildings           List every building with its current price
  help                Show this message"""


@dataclass(frozen=True)
class CommandResult:
    success: bool
    message: str


class GameService:
    """Loads, mutates and saves players one command at a time.

    Commands report failures as a ``CommandResult`` instead of raising. The
    per-player *locks* must be shared with any scheduler updating the same
    store.
    """

    def __init__(
        self,
        economy: EconomyEngine,
        database: Database,
        locks: KeyedLock | None = None,
    ) -> None:
        self.economy = economy
        self.database = database
        self.locks = locks or KeyedLock()
        self._commands: dict[str, Callable[[str, list[str]], CommandResult]] = {
            "status": lambda pid, _args: CommandResult(True, self.status(pid)),
            "buy": lambda pid, args: self.buy(pid, _single_arg("buy", args)),
            "sell": lambda pid, args: self.sell(pid, _single_arg("sell", args)),
            "prestige": lambda pid, _args: self.perform_prestige(pid),
            "resources": lambda _pid, _args: CommandResult(True, self.list_resources()),
            "buildings": lambda pid, _args: CommandResult(True, self.list_buildings(pid)),
            "help": lambda _pid, _args: CommandResult(True, self.help()),
        }

    @classmethod
    def from_config(
        cls,
        config: GameConfig,
        database: Database,
        plugins: tuple[ContentPlugin, ...] = (),
        events: EventBus | None = None,
        locks: KeyedLock | None = None,
    ) -> GameService:
        registry = config.build_registry(plugins)
        expressions = ExpressionEngine(
            ExpirationCache(max_entries=config.engine.cache_max_entries),
            ttl=config.engine.cache_ttl,
        )
        economy = EconomyEngine(registry, expressions, events)
        return cls(economy, database, locks)

    # ── Commands ─────────────────────────────────────────────────────

    def create_player(self, player_id: str) -> CommandResult:
        with self.locks.hold(player_id):
            try:
                self.database.load_player(player_id)
            except NotFoundError:
                pass
            else:
                return CommandResult(False, f"Player {player_id!r} already exists")
            try:
                player = self.economy.create_player(player_id)
                self.database.save_player(player_id, player.to_bytes())
            except IdleCoreError as exc:
                return CommandResult(False, str(exc))
        return CommandResult(True, f"Created player {player_id!r}")

    def buy(self, player_id: str, key: str) -> CommandResult:
        return self._mutate(
            player_id, lambda p: self.economy.buy(p, key), f"Bought {key}"
        )

    def sell(self, player_id: str, key: str) -> CommandResult:
        return self._mutate(
            player_id, lambda p: self.economy.sell(p, key), f"Sold {key}"
        )

    def perform_prestige(self, player_id: str) -> CommandResult:
        return self._mutate(
            player_id, self.economy.perform_prestige, "Prestige complete"
        )

    def advance(self, player_id: str, ticks: int, interval: float = 1.0) -> CommandResult:
        """Apply *ticks* update cycles, *interval* seconds apart, to one player."""
        if ticks < 1:
            return CommandResult(False, f"ticks must be at least 1, got {ticks!r}")

        def _advance(player: PlayerState) -> None:
            for _ in range(ticks):
                self.economy.update_player(player, player.last_update + interval)

        return self._mutate(player_id, _advance, f"Advanced {ticks} tick(s)")

    def execute(self, player_id: str, line: str) -> CommandResult:
        """Dispatch a text command such as ``buy mine``."""
        words = line.split()
        if not words:
            return CommandResult(False, "Empty command; try 'help'")
        handler = self._commands.get(words[0].lower())
        if handler is None:
            return CommandResult(False, f"Unknown command {words[0]!r}; try 'help'")
        try:
            return handler(player_id, words[1:])
        except (IdleCoreError, ValueError) as exc:
            return CommandResult(False, str(exc))

    # ── Queries ──────────────────────────────────────────────────────

    def get_player(self, player_id: str) -> PlayerState:
        with self.locks.hold(player_id):
            return PlayerState.from_bytes(self.database.load_player(player_id))

    def get_player_resources(self, player_id: str) -> dict[str, int]:
        return dict(self.get_player(player_id).resources)

    def get_player_buildings(self, player_id: str) -> dict[str, int]:
        return dict(self.get_player(player_id).buildings)

    def status(self, player_id: str) -> str:
        player = self.get_player(player_id)
        registry = self.economy.registry
        lines = [f"Player {player.player_id} (prestige {player.prestige})", "Resources:"]
        for key, amount in sorted(player.resources.items()):
            name = registry.resources()[key].name if key in registry.resources() else key
            rate = player.resource_rate.get(key, 0.0)
            lines.append(f"  {name}: {amount} ({rate:+.2f}/tick)")
        owned = [(k, n) for k, n in sorted(player.buildings.items()) if n > 0]
        if owned:
            lines.append("Buildings:")
            lines.extend(f"  {k}: {n}" for k, n in owned)
        upgrades = sorted(k for k, v in player.upgrades.items() if v)
        if upgrades:
            lines.append("Upgrades: " + ", ".join(upgrades))
        if player.log:
            lines.append("Recent:")
            lines.extend(f"  {m}" for m in player.log)
        return "\n".join(lines)

    def list_resources(self) -> str:
        items = self.economy.registry.resources()
        if not items:
            return "No resources defined"
        return "\n".join(
            f"{key}: {item.name}" + (f" ({item.description})" if item.description else "")
            for key, item in sorted(items.items())
        )

    def list_buildings(self, player_id: str) -> str:
        player = self.get_player(player_id)
        items = self.economy.registry.buildings()
        if not items:
            return "No buildings defined"
        lines = []
        for key, item in sorted(items.items()):
            cost = self.economy.compute_cost(player, key)
            price = ", ".join(f"{v:.0f} {r}" for r, v in sorted(cost.items())) or "free"
            lines.append(f"{key}: {item.name}, owned {player.building_count(key)}, costs {price}")
        return "\n".join(lines)

    @staticmethod
    def help() -> str:
        return HELP_TEXT

    # ── Private helpers ──────────────────────────────────────────────

    def _mutate(
        self,
        player_id: str,
        action: Callable[[PlayerState], object],
        message: str,
    ) -> CommandResult:
        with self.locks.hold(player_id):
            try:
                player = PlayerState.from_bytes(self.database.load_player(player_id))
                action(player)
                self.database.save_player(player_id, player.to_bytes())
            except IdleCoreError as exc:
                logger.info("Player %s: command failed: %s", player_id, exc)
                return CommandResult(False, str(exc))
        return CommandResult(True, message)


def _single_arg(command: str, args: list[str]) -> str:
    if len(args) != 1:
        raise ValueError(f"Usage: {command} <key>")
    return args[0]
