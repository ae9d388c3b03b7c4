from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from idlecore._types import is_number
from idlecore.content import BUILDINGS, ContentItem, ContentRegistry
from idlecore.cost_scaling import CostScaling
from idlecore.effect import EffectBlock, EffectPhase, EffectType
from idlecore.errors import AffordabilityError, AlreadyOwnedError, EvaluationError, NotFoundError
from idlecore.events import (
    AchievementUnlocked,
    BuildingBought,
    BuildingSold,
    EventBus,
    GameEvent,
    Prestige,
    UpgradeBought,
)
from idlecore.expression import ExpressionEngine
from idlecore.resolver import EffectResolver
from idlecore.state import PlayerState

logger = logging.getLogger(__name__)

SELL_REFUND_RATIO = 0.5


class EconomyEngine:
    """Authoritative economy rules: purchases, prestige, achievements and income."""

    def __init__(
        self,
        registry: ContentRegistry,
        expressions: ExpressionEngine | None = None,
        events: EventBus | None = None,
        resolver: EffectResolver | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.expressions = expressions or ExpressionEngine()
        self.events = events or EventBus()
        self.resolver = resolver or EffectResolver(registry, self.expressions, clock)
        self.clock = clock

    # ── Player actions ───────────────────────────────────────────────

    def create_player(self, player_id: str) -> PlayerState:
        player = PlayerState(player_id, self.registry)
        player.last_update = self.clock()
        logger.info("Created player %s", player_id)
        return player

    def buy(self, player: PlayerState, key: str) -> GameEvent:
        """Buy one upgrade or building. Upgrades win when both share *key*."""
        upgrade = self.registry.upgrades().get(key)
        if upgrade is not None:
            return self._buy_upgrade(player, upgrade)
        building = self.registry.buildings().get(key)
        if building is not None:
            return self._buy_building(player, building)
        raise NotFoundError(f"Nothing to buy named {key!r}")

    def sell(self, player: PlayerState, key: str) -> BuildingSold:
        building = self.registry.buildings().get(key)
        if building is None:
            raise NotFoundError(f"Unknown building: {key!r}")
        if player.building_count(key) <= 0:
            raise NotFoundError(f"Player {player.player_id} owns no {key!r} to sell")

        for resource, amount in self.compute_sell_price(key).items():
            player.add_resource(resource, amount)
        player.add_building(key, -1)
        player.add_log(f"Sold {building.name}")
        event = BuildingSold(
            player.player_id, building_name=key, amount=player.building_count(key)
        )
        self.events.emit(event)
        return event

    def perform_prestige(self, player: PlayerState) -> Prestige:
        """Spend the prestige cost, reset progress, then apply the prestige effects."""
        item = self.registry.prestige()
        cost = dict(item.cost)
        self._require(player, cost, item.name)

        player.spend_resources(cost)
        player.reset_progress(self.registry)
        self.resolver.execute_block(player, item.effect_block())

        player.add_log(f"Prestiged to level {player.prestige}")
        logger.info("Player %s prestiged to %d", player.player_id, player.prestige)
        event = Prestige(player.player_id, prestige_level=player.prestige)
        self.events.emit(event)
        return event

    def check_achievements(self, player: PlayerState) -> list[AchievementUnlocked]:
        """Unlock achievement levels in ascending order, stopping at the first unmet one."""
        unlocked: list[AchievementUnlocked] = []
        for key, item in self.registry.achievements().items():
            current = player.achievement_level(key)
            for level in sorted(item.levels, key=lambda lv: lv.level):
                if level.level <= current:
                    continue
                if not self.resolver.check_condition(player, level.condition):
                    break
                player.set_achievement_level(key, level.level)
                for resource, amount in level.rewards.items():
                    player.add_resource(resource, amount)
                player.add_log(f"Achievement unlocked: {item.name} (level {level.level})")
                event = AchievementUnlocked(
                    player.player_id, achievement_name=key, level=level.level
                )
                self.events.emit(event)
                unlocked.append(event)
        return unlocked

    def update_player(self, player: PlayerState, now: float | None = None) -> dict[str, float]:
        """Advance one tick: income, shiny expiry, then achievements.

        Returns the income applied per resource.
        """
        now = self.clock() if now is None else now
        yields = self.total_yield(player)
        multipliers = self.total_multiplier(player)

        income: dict[str, float] = {}
        for resource, amount in yields.items():
            gained = amount * multipliers.get(resource, 1.0) * player.multiplier(resource)
            player.add_resource(resource, gained)
            income[resource] = gained
        for resource in player.resources:
            player.resource_rate[resource] = income.get(resource, 0.0)

        self.expire_shinies(player, now)
        self.check_achievements(player)
        player.last_update = now
        return income

    # ── Queries ──────────────────────────────────────────────────────

    def compute_cost(self, player: PlayerState, key: str) -> dict[str, float]:
        upgrade = self.registry.upgrades().get(key)
        if upgrade is not None:
            return dict(upgrade.cost)
        building = self.registry.buildings().get(key)
        if building is None:
            raise NotFoundError(f"Nothing to buy named {key!r}")
        scaling = CostScaling.from_properties(building.properties)
        return scaling.compute(building.cost, player.building_count(key))

    def compute_sell_price(self, key: str) -> dict[str, int]:
        building = self.registry.get_content(BUILDINGS, key)
        return {r: int(v * SELL_REFUND_RATIO) for r, v in building.cost.items()}

    def total_yield(self, player: PlayerState) -> dict[str, float]:
        """Summed yield per resource across every owned building."""
        totals: dict[str, float] = {}
        for key, item in self.registry.buildings().items():
            owned = player.building_count(key)
            if owned <= 0:
                continue
            condition = item.effect_block().condition
            if condition and not self.resolver.check_condition(player, condition):
                continue
            context = {"count": float(owned), "tier": float(owned)}
            variables = self.resolver.variables(player, context)
            for eff in item.effects_of(EffectType.YIELD):
                if eff.condition and not self.resolver.check_condition(
                    player, eff.condition, context
                ):
                    continue
                try:
                    amount = self.expressions.evaluate(eff.formula, variables)
                except EvaluationError as exc:
                    logger.warning(
                        "Player %s: yield of %r from %r skipped: %s",
                        player.player_id,
                        eff.target,
                        key,
                        exc,
                    )
                    continue
                totals[eff.target] = totals.get(eff.target, 0.0) + amount
        return totals

    def total_multiplier(self, player: PlayerState) -> dict[str, float]:
        """Summed multiply values of owned upgrades, per resource."""
        totals: dict[str, float] = {}
        for key, item in self.registry.upgrades().items():
            if not player.has_upgrade(key):
                continue
            for eff in item.effects_of(EffectType.MULTIPLY):
                if eff.condition and not self.resolver.check_condition(player, eff.condition):
                    continue
                totals[eff.target] = totals.get(eff.target, 0.0) + eff.value
        return totals

    def available_purchases(self, player: PlayerState) -> list[ContentItem]:
        """Unowned upgrades and all buildings whose prerequisites are present."""
        items: list[ContentItem] = []
        for key, item in self.registry.upgrades().items():
            if not player.has_upgrade(key) and self._requirements_met(player, item):
                items.append(item)
        for key, item in self.registry.buildings().items():
            if key in self.registry.upgrades():
                continue
            if self._requirements_met(player, item):
                items.append(item)
        return items

    def expire_shinies(self, player: PlayerState, now: float) -> list[str]:
        """Deactivate shiny timers older than their ``duration``."""
        expired: list[str] = []
        shinies = self.registry.shinies()
        for key, timer in player.shinies.items():
            if not timer.active:
                continue
            item = shinies.get(key)
            duration = item.get("duration") if item is not None else None
            if not is_number(duration):
                continue
            if now - timer.last_spawn >= duration:
                timer.active = False
                expired.append(key)
                logger.debug("Player %s: shiny %r expired", player.player_id, key)
        return expired

    # ── Private helpers ──────────────────────────────────────────────

    def _buy_upgrade(self, player: PlayerState, item: ContentItem) -> UpgradeBought:
        if player.has_upgrade(item.key):
            raise AlreadyOwnedError(f"Upgrade {item.key!r} is already owned")
        cost = dict(item.cost)
        self._require(player, cost, item.key)

        player.spend_resources(cost)
        player.add_upgrade(item.key)
        self._run_immediate(player, item, {})
        player.add_log(f"Bought {item.name}")
        event = UpgradeBought(player.player_id, upgrade_name=item.key)
        self.events.emit(event)
        return event

    def _buy_building(self, player: PlayerState, item: ContentItem) -> BuildingBought:
        cost = self.compute_cost(player, item.key)
        self._require(player, cost, item.key)

        player.spend_resources(cost)
        player.add_building(item.key)
        owned = player.building_count(item.key)
        self._run_immediate(player, item, {"count": float(owned), "tier": float(owned)})
        player.add_log(f"Bought {item.name}")
        event = BuildingBought(player.player_id, building_name=item.key, amount=owned)
        self.events.emit(event)
        return event

    def _run_immediate(
        self, player: PlayerState, item: ContentItem, context: Mapping[str, float]
    ) -> None:
        effects = tuple(e for e in item.effects if e.phase is EffectPhase.IMMEDIATE)
        if not effects:
            return
        gate = item.effect_block()
        self.resolver.execute_block(
            player,
            EffectBlock(effects=effects, condition=gate.condition, chance=gate.chance),
            context,
        )

    @staticmethod
    def _require(player: PlayerState, cost: Mapping[str, float], key: str) -> None:
        if not player.can_afford(cost):
            missing = {
                r: amount - player.resource(r)
                for r, amount in cost.items()
                if player.resource(r) < amount
            }
            raise AffordabilityError(f"Cannot afford {key!r}: short by {missing}")

    @staticmethod
    def _requirements_met(player: PlayerState, item: ContentItem) -> bool:
        return all(player.has(req) for req in item.requirements)
