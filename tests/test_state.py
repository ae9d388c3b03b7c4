"""Tests for player state."""
import pytest

from idlecore.content import ContentRegistry
from idlecore.errors import PersistenceError
from idlecore.state import LOG_LIMIT, PlayerState, ShinyState


def _make_registry() -> ContentRegistry:
    return ContentRegistry({
        "resources": {"gold": {"initial": 50}, "gems": {}},
        "buildings": {"mine": {"initial": 1}, "farm": {}},
        "upgrades": {"pickaxe": {}},
    })


def test_seeded_from_catalog():
    player = PlayerState("p1", _make_registry())
    assert player.resources == {"gold": 50, "gems": 0}
    assert player.buildings == {"mine": 1, "farm": 0}
    assert player.upgrades == {"pickaxe": False}
    assert player.multiplier("gold") == 1.0
    assert player.prestige == 0


def test_add_resource_truncates_and_clamps():
    player = PlayerState("p1")
    player.add_resource("gold", 2.9)
    assert player.resource("gold") == 2
    player.add_resource("gold", -10)
    assert player.resource("gold") == 0


def test_earned_and_max_tracking():
    player = PlayerState("p1")
    player.add_resource("gold", 100)
    player.remove_resource("gold", 60)
    player.add_resource("gold", 10)
    assert player.resource("gold") == 50
    assert player.resource_max["gold"] == 100
    assert player.resource_earned["gold"] == 110


def test_can_afford_and_spend_never_negative():
    player = PlayerState("p1")
    player.add_resource("gold", 10)
    cost = {"gold": 9.5}
    assert player.can_afford(cost)
    player.spend_resources(cost)
    assert player.resource("gold") == 0
    assert not player.can_afford({"gold": 0.5})


@pytest.mark.parametrize("balance, cost", [(10, 10), (7, 6.2), (100, 99.99), (1, 0)])
def test_affordability_safety(balance, cost):
    player = PlayerState("p1")
    player.add_resource("gold", balance)
    assert player.can_afford({"gold": cost})
    player.spend_resources({"gold": cost})
    assert player.resource("gold") >= 0


def test_can_afford_missing_resource():
    assert not PlayerState("p1").can_afford({"wood": 1})
    assert PlayerState("p1").can_afford({})


def test_has():
    player = PlayerState("p1", _make_registry())
    assert player.has("gold")
    assert not player.has("gems")
    assert player.has("mine")
    assert not player.has("farm")
    assert not player.has("pickaxe")
    player.add_upgrade("pickaxe")
    assert player.has("pickaxe")
    player.set_achievement_level("rich", 1)
    assert player.has("rich")


def test_achievement_level_never_decreases():
    player = PlayerState("p1")
    player.set_achievement_level("rich", 2)
    player.set_achievement_level("rich", 1)
    assert player.achievement_level("rich") == 2


def test_log_is_bounded():
    player = PlayerState("p1")
    for i in range(LOG_LIMIT + 5):
        player.add_log(f"message {i}")
    assert len(player.log) == LOG_LIMIT
    assert player.log[0] == "message 5"
    assert player.log[-1] == f"message {LOG_LIMIT + 4}"


def test_variables_surface():
    player = PlayerState("p1", _make_registry())
    player.add_upgrade("pickaxe")
    player.set_achievement_level("rich", 3)
    player.resource_rate["gold"] = 2.5
    player.prestige = 2
    variables = player.variables()
    assert variables["gold"] == 50.0
    assert variables["gold:max"] == 50.0
    assert variables["gold:ps"] == 2.5
    assert variables["mine"] == 1.0
    assert variables["pickaxe"] == 1.0
    assert variables["rich"] == 3.0
    assert variables["prestige"] == 2.0
    assert variables["have:mine"] == 1.0
    assert variables["have:farm"] == 0.0
    assert variables["have:rich"] == 1.0


def test_reset_progress():
    registry = _make_registry()
    player = PlayerState("p1", registry)
    player.add_resource("gold", 450)
    player.add_resource("gems", 3)
    player.add_building("farm", 4)
    player.add_upgrade("pickaxe")
    player.reset_progress(registry)
    assert player.resources == {"gold": 50, "gems": 0}
    assert player.buildings == {"mine": 0, "farm": 0}
    assert player.has_upgrade("pickaxe")
    assert player.prestige == 1


def test_round_trip_bytes():
    player = PlayerState("p1", _make_registry())
    player.add_resource("gold", 25)
    player.add_building("farm", 2)
    player.add_upgrade("pickaxe")
    player.multipliers["gold"] = 1.5
    player.set_achievement_level("rich", 1)
    player.shinies["nugget"] = ShinyState(active=True, last_spawn=123.5)
    player.add_log("hello")
    player.last_update = 99.0

    restored = PlayerState.from_bytes(player.to_bytes())
    assert restored.to_dict() == player.to_dict()
    assert restored.shinies["nugget"] == ShinyState(active=True, last_spawn=123.5)


@pytest.mark.parametrize("blob", [b"not json", b"[1, 2]", b'{"resources": {}}', b'{"id": "p", "resources": {"gold": "x"}}'])
def test_from_bytes_rejects_bad_blobs(blob):
    with pytest.raises(PersistenceError):
        PlayerState.from_bytes(blob)
