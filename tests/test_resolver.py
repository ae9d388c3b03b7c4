"""Tests for effect resolution."""
import logging
import random

from idlecore.content import ContentRegistry
from idlecore.effect import Effect, EffectBlock, EffectDef, EffectType
from idlecore.expression import ExpressionEngine
from idlecore.resolver import EffectResolver
from idlecore.state import PlayerState


def _make_registry() -> ContentRegistry:
    return ContentRegistry({
        "resources": {"gold": {"initial": 10}, "gems": {"initial": 2}},
        "shinies": {
            "nugget": {
                "effects": [
                    {"type": "yield", "target": "gold", "expression": "100"},
                    {"type": "spawn", "target": "nugget"},
                ],
            },
            "mirage": {"chance": 0, "effects": ["yield:gold:1000"]},
        },
    })


def _make_resolver(registry: ContentRegistry | None = None, now: float = 500.0) -> EffectResolver:
    registry = registry or _make_registry()
    return EffectResolver(
        registry, ExpressionEngine(rng=random.Random(0)), clock=lambda: now
    )


def _make_player(registry: ContentRegistry | None = None) -> PlayerState:
    return PlayerState("p1", registry or _make_registry())


def test_yield_adds_formula_result():
    resolver = _make_resolver()
    player = _make_player()
    assert resolver.apply(player, Effect.yields("gold", "gold * 2 + count"), {"count": 3})
    assert player.resource("gold") == 33


def test_yield_static_value():
    resolver = _make_resolver()
    player = _make_player()
    resolver.apply(player, EffectDef(type=EffectType.YIELD, target="gems", value=5))
    assert player.resource("gems") == 7


def test_multiply_touches_multiplier_only():
    resolver = _make_resolver()
    player = _make_player()
    resolver.apply(player, Effect.multiply("gold", 2))
    resolver.apply(player, Effect.multiply("gold", 1.5))
    assert player.multiplier("gold") == 3.0
    assert player.resource("gold") == 10


def test_grant_activates_shiny_timer():
    resolver = _make_resolver(now=1234.0)
    player = _make_player()
    resolver.apply(player, Effect.grant("nugget"))
    assert player.shinies["nugget"].active
    assert player.shinies["nugget"].last_spawn == 1234.0


def test_spawn_applies_shiny_yields_once():
    resolver = _make_resolver()
    player = _make_player()
    resolver.apply(player, Effect.spawn("nugget"))
    assert player.resource("gold") == 110


def test_spawn_unknown_shiny_is_noop():
    resolver = _make_resolver()
    player = _make_player()
    assert resolver.apply(player, Effect.spawn("ghost"))
    assert player.resource("gold") == 10


def test_spawn_respects_shiny_chance():
    resolver = _make_resolver()
    player = _make_player()
    resolver.apply(player, Effect.spawn("mirage"))
    assert player.resource("gold") == 10


def test_reset_all_and_single():
    resolver = _make_resolver()
    player = _make_player()
    player.add_resource("gold", 90)
    player.add_resource("gems", 8)
    player.add_resource("wood", 4)

    resolver.apply(player, Effect.reset("gems"))
    assert player.resource("gems") == 2
    assert player.resource("gold") == 100

    resolver.apply(player, Effect.reset())
    assert player.resources == {"gold": 10, "gems": 2, "wood": 0}


def test_effect_condition_checked():
    resolver = _make_resolver()
    player = _make_player()
    assert not resolver.apply(player, Effect.yields("gold", "5", condition="gold > 100"))
    assert player.resource("gold") == 10
    assert resolver.apply(player, Effect.yields("gold", "5", condition="gold > 5"))
    assert player.resource("gold") == 15


def test_evaluation_error_skips_effect(caplog):
    resolver = _make_resolver()
    player = _make_player()
    with caplog.at_level(logging.WARNING, logger="idlecore.resolver"):
        assert not resolver.apply(player, Effect.yields("gold", "missing * 2"))
    assert player.resource("gold") == 10
    assert "missing" in caplog.text


def test_block_gate_failing_skips_all():
    resolver = _make_resolver()
    player = _make_player()
    block = EffectBlock(
        effects=(Effect.yields("gold", "1"), Effect.yields("gems", "1")),
        condition="gold > 1000",
    )
    assert not resolver.execute_block(player, block)
    assert player.resources == {"gold": 10, "gems": 2}


def test_block_gate_evaluated_once():
    resolver = _make_resolver()
    player = _make_player()
    # The first effect would break the gate if it were re-checked per effect.
    block = EffectBlock(
        effects=(Effect.yields("gold", "100"), Effect.yields("gems", "1")),
        condition="gold < 50",
    )
    assert resolver.execute_block(player, block)
    assert player.resources == {"gold": 110, "gems": 3}


def test_block_chance_extremes():
    resolver = _make_resolver()
    player = _make_player()
    always = EffectBlock(effects=(Effect.yields("gold", "1"),), chance=100)
    never = EffectBlock(effects=(Effect.yields("gold", "1"),), chance=0)
    assert resolver.execute_block(player, always)
    assert not resolver.execute_block(player, never)
    assert player.resource("gold") == 11


def test_block_per_effect_condition():
    resolver = _make_resolver()
    player = _make_player()
    block = EffectBlock(effects=(
        Effect.yields("gold", "1", condition="gems > 5"),
        Effect.yields("gems", "1"),
    ))
    resolver.execute_block(player, block)
    assert player.resources == {"gold": 10, "gems": 3}


def test_broken_gate_counts_as_failed():
    resolver = _make_resolver()
    player = _make_player()
    block = EffectBlock(effects=(Effect.yields("gold", "1"),), condition="nope > 1")
    assert not resolver.execute_block(player, block)
