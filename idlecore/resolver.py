from __future__ import annotations

import logging
import time
from typing import Callable, Mapping

from idlecore.content import ContentRegistry
from idlecore.effect import EffectBlock, EffectDef, EffectType
from idlecore.errors import EvaluationError
from idlecore.expression import ExpressionEngine
from idlecore.state import PlayerState, ShinyState

logger = logging.getLogger(__name__)


class EffectResolver:
    """Applies effects to a player. Holds no per-player state of its own."""

    def __init__(
        self,
        registry: ContentRegistry,
        expressions: ExpressionEngine,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = registry
        self.expressions = expressions
        self.clock = clock
        self._handlers: dict[EffectType, Callable[[PlayerState, EffectDef, Mapping[str, float]], None]] = {
            EffectType.YIELD: self._apply_yield,
            EffectType.MULTIPLY: self._apply_multiply,
            EffectType.GRANT: self._apply_grant,
            EffectType.SPAWN: self._apply_spawn,
            EffectType.RESET: self._apply_reset,
        }

    def apply(
        self,
        player: PlayerState,
        effect: EffectDef,
        context: Mapping[str, float] | None = None,
    ) -> bool:
        """Apply one effect, honouring its own condition. Returns True if applied."""
        context = context or {}
        if effect.condition and not self.check_condition(player, effect.condition, context):
            return False
        try:
            self._handlers[effect.type](player, effect, context)
        except EvaluationError as exc:
            logger.warning(
                "Player %s: skipped %s effect on %r: %s",
                player.player_id,
                effect.type.value,
                effect.target,
                exc,
            )
            return False
        return True

    def execute_block(
        self,
        player: PlayerState,
        block: EffectBlock,
        context: Mapping[str, float] | None = None,
    ) -> bool:
        """Run every effect in *block* if its gate passes. Returns whether it passed."""
        context = context or {}
        if not self._gate_passes(player, block, context):
            return False
        for effect in block.effects:
            self.apply(player, effect, context)
        return True

    def check_condition(
        self,
        player: PlayerState,
        formula: str,
        context: Mapping[str, float] | None = None,
    ) -> bool:
        """Evaluate a gate formula; evaluation errors count as a failed gate."""
        try:
            return self.expressions.evaluate_condition(
                formula, self.variables(player, context)
            )
        except EvaluationError as exc:
            logger.warning(
                "Player %s: condition %r failed to evaluate: %s",
                player.player_id,
                formula,
                exc,
            )
            return False

    @staticmethod
    def variables(
        player: PlayerState, context: Mapping[str, float] | None = None
    ) -> dict[str, float]:
        variables = player.variables()
        if context:
            variables.update(context)
        return variables

    # ── Private helpers ──────────────────────────────────────────────

    def _gate_passes(
        self, player: PlayerState, block: EffectBlock, context: Mapping[str, float]
    ) -> bool:
        if block.chance is not None:
            if self.expressions.rng.random() * 100 >= block.chance:
                return False
        if block.condition:
            return self.check_condition(player, block.condition, context)
        return True

    def _apply_yield(
        self, player: PlayerState, effect: EffectDef, context: Mapping[str, float]
    ) -> None:
        amount = self.expressions.evaluate(effect.formula, self.variables(player, context))
        player.add_resource(effect.target, amount)
        logger.debug(
            "Player %s: yield %.2f %s", player.player_id, amount, effect.target
        )

    def _apply_multiply(
        self, player: PlayerState, effect: EffectDef, context: Mapping[str, float]
    ) -> None:
        player.multipliers[effect.target] = player.multiplier(effect.target) * effect.value

    def _apply_grant(
        self, player: PlayerState, effect: EffectDef, context: Mapping[str, float]
    ) -> None:
        player.shinies[effect.target] = ShinyState(active=True, last_spawn=self.clock())

    def _apply_spawn(
        self, player: PlayerState, effect: EffectDef, context: Mapping[str, float]
    ) -> None:
        shiny = self.registry.shinies().get(effect.target)
        if shiny is None:
            logger.debug("Player %s: no shiny %r to spawn", player.player_id, effect.target)
            return
        block = shiny.effect_block()
        yields = tuple(e for e in block.effects if e.type is EffectType.YIELD)
        self.execute_block(
            player,
            EffectBlock(effects=yields, condition=block.condition, chance=block.chance),
        )

    def _apply_reset(
        self, player: PlayerState, effect: EffectDef, context: Mapping[str, float]
    ) -> None:
        resources = self.registry.resources()
        names = list(player.resources) if effect.target == "all" else [effect.target]
        for name in names:
            item = resources.get(name)
            player.resources[name] = max(0, item.initial) if item is not None else 0
