from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field

from idlecore.economy import EconomyEngine
from idlecore.errors import IdleCoreError
from idlecore.state import PlayerState

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86_400.0


@dataclass
class DaySnapshot:
    day: int
    resources: dict[str, int]
    buildings: dict[str, int]
    rates: dict[str, float]
    purchases: list[str] = field(default_factory=list)


@dataclass
class SimulationReport:
    """Per-day history of one simulated player."""

    player_id: str
    days: int
    history: list[DaySnapshot] = field(default_factory=list)

    @property
    def final_resources(self) -> dict[str, int]:
        return dict(self.history[-1].resources) if self.history else {}

    @property
    def total_purchases(self) -> int:
        return sum(len(s.purchases) for s in self.history)

    def resource_series(self, resource: str) -> list[tuple[int, int]]:
        return [(s.day, s.resources.get(resource, 0)) for s in self.history]

    def resource_names(self) -> list[str]:
        names: set[str] = set()
        for s in self.history:
            names.update(s.resources)
        return sorted(names)


class GameSimulator:
    """Offline progress model: each day, buy everything affordable, then update once."""

    def __init__(self, economy: EconomyEngine, seed: int | None = None) -> None:
        self.economy = economy
        if seed is not None:
            self.economy.expressions.inject_rng(random.Random(seed))

    def simulate_player(self, player: PlayerState, days: int) -> SimulationReport:
        if days < 0:
            raise ValueError(f"days must not be negative, got {days!r}")
        report = SimulationReport(player_id=player.player_id, days=days)
        start = player.last_update
        for day in range(1, days + 1):
            purchases = self._simulate_day(player, start + day * SECONDS_PER_DAY)
            report.history.append(
                DaySnapshot(
                    day=day,
                    resources=dict(player.resources),
                    buildings=dict(player.buildings),
                    rates=dict(player.resource_rate),
                    purchases=purchases,
                )
            )
            logger.debug(
                "Day %d for %s: bought %s, resources %s",
                day,
                player.player_id,
                purchases,
                player.resources,
            )
        return report

    def run(self, num_players: int, days: int) -> dict[str, SimulationReport]:
        reports: dict[str, SimulationReport] = {}
        for i in range(num_players):
            player = self.economy.create_player(f"sim_player_{i}")
            reports[player.player_id] = self.simulate_player(player, days)
            logger.info(
                "Simulated %s for %d days: %s",
                player.player_id,
                days,
                reports[player.player_id].final_resources,
            )
        return reports

    def _simulate_day(self, player: PlayerState, now: float) -> list[str]:
        registry = self.economy.registry
        bought: list[str] = []
        for key in sorted(registry.buildings()):
            if key in registry.upgrades():
                continue
            if self._try_buy(player, key):
                bought.append(key)
        for key in sorted(registry.upgrades()):
            if self._try_buy(player, key):
                bought.append(key)
        self.economy.update_player(player, now)
        return bought

    def _try_buy(self, player: PlayerState, key: str) -> bool:
        try:
            self.economy.buy(player, key)
        except IdleCoreError:
            return False
        return True
