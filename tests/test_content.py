"""Tests for catalog ingestion."""
from typing import Any, Iterable, Mapping

import pytest

from idlecore.content import (
    ContentItem,
    ContentPlugin,
    ContentRegistry,
    parse_chance,
    parse_effect,
)
from idlecore.effect import EffectType
from idlecore.errors import NotFoundError, ParseError


def _make_catalog() -> dict[str, Any]:
    return {
        "resources": {
            "gold": {"name": "Gold", "initial": 100},
            "gems": {},
        },
        "buildings": {
            "mine": {
                "name": "Mine",
                "cost": {"gold": 10},
                "effects": [
                    {"type": "yield", "target": "gold", "expression": "count * 2"},
                ],
                "flavor": "dusty",
                "tags": ["early", "production"],
            },
        },
        "upgrades": {
            "pickaxe": {
                "cost": {"gold": 50.5},
                "reqs": ["mine"],
                "effects": [{"type": "multiply", "target": "gold", "value": 2}],
            },
        },
        "achievements": {
            "rich": {
                "levels": [
                    {"level": 2, "condition": "gold >= 1000", "rewards": {"gems": 1}},
                    {"level": 1, "condition": "gold >= 100"},
                ],
            },
            "first": {"condition": "mine > 0", "rewards": {"gold": 5}},
        },
        "shinies": {
            "nugget": {"chance": "25%", "duration": 30, "effects": ["yield:gold:50"]},
        },
        "prestige": {
            "prestige": {"cost": {"gold": 1000}, "effects": [{"type": "reset", "target": "all"}]},
        },
    }


def test_load_known_fields():
    registry = ContentRegistry.load(_make_catalog())
    mine = registry.get_content("buildings", "mine")
    assert mine.name == "Mine"
    assert dict(mine.cost) == {"gold": 10.0}
    assert len(mine.effects) == 1
    assert mine.effects[0].type is EffectType.YIELD
    assert mine.effects[0].expression == "count * 2"
    assert mine.effects[0].value == 0.0


def test_unknown_fields_preserved():
    mine = ContentRegistry(_make_catalog()).get_content("buildings", "mine")
    assert mine.get("flavor") == "dusty"
    assert mine.get("tags") == ["early", "production"]
    assert mine.get("missing", "default") == "default"


def test_name_defaults_to_key():
    registry = ContentRegistry(_make_catalog())
    assert registry.get_content("resources", "gems").name == "gems"
    assert registry.get_content("resources", "gems").initial == 0


def test_float_and_int_costs_accepted():
    pickaxe = ContentRegistry(_make_catalog()).get_content("upgrades", "pickaxe")
    assert pickaxe.cost["gold"] == pytest.approx(50.5)
    assert pickaxe.requirements == ("mine",)


def test_get_content_not_found():
    registry = ContentRegistry(_make_catalog())
    with pytest.raises(NotFoundError, match="nope"):
        registry.get_content("buildings", "nope")
    with pytest.raises(LookupError):
        registry.get_content("nowhere", "mine")


def test_get_all_content():
    registry = ContentRegistry(_make_catalog())
    assert set(registry.get_all_content("buildings")) == {"mine"}
    assert dict(registry.get_all_content("unknown")) == {}
    with pytest.raises(TypeError):
        registry.get_all_content("buildings")["x"] = None  # type: ignore[index]


def test_items_are_immutable():
    mine = ContentRegistry(_make_catalog()).get_content("buildings", "mine")
    with pytest.raises(AttributeError):
        mine.name = "Other"  # type: ignore[misc]
    with pytest.raises(TypeError):
        mine.cost["gold"] = 0  # type: ignore[index]


def test_catalog_mutation_does_not_leak():
    catalog = _make_catalog()
    registry = ContentRegistry(catalog)
    catalog["buildings"]["mine"]["tags"].append("late")
    assert registry.get_content("buildings", "mine").get("tags") == ["early", "production"]


def test_typed_conveniences():
    registry = ContentRegistry(_make_catalog())
    assert set(registry.resources()) == {"gold", "gems"}
    assert set(registry.upgrades()) == {"pickaxe"}
    assert set(registry.shinies()) == {"nugget"}
    assert registry.prestige().cost["gold"] == 1000
    assert "buildings" in registry.categories()


def test_prestige_missing():
    registry = ContentRegistry({"resources": {"gold": {}}})
    with pytest.raises(NotFoundError):
        registry.prestige()


def test_achievement_levels():
    registry = ContentRegistry(_make_catalog())
    rich = registry.get_content("achievements", "rich")
    assert [lv.level for lv in rich.levels] == [2, 1]
    assert dict(rich.levels[0].rewards) == {"gems": 1.0}

    first = registry.get_content("achievements", "first")
    assert len(first.levels) == 1
    assert first.levels[0].level == 1
    assert first.levels[0].condition == "mine > 0"
    assert dict(first.levels[0].rewards) == {"gold": 5.0}


def test_shiny_block_gate():
    nugget = ContentRegistry(_make_catalog()).get_content("shinies", "nugget")
    block = nugget.effect_block()
    assert block.chance == 25.0
    assert block.gated
    assert block.effects[0].target == "gold"
    assert block.effects[0].expression == "50"


# ── Malformed input ─────────────────────────────────────────────────


@pytest.mark.parametrize(
    "catalog, message",
    [
        ({"buildings": {"mine": {"cost": {"gold": "ten"}}}}, "must be a number"),
        ({"buildings": {"mine": {"cost": {"gold": True}}}}, "must be a number"),
        ({"buildings": {"mine": {"initial": "5"}}}, "must be a number"),
        ({"buildings": {"mine": {"effects": [{"target": "gold"}]}}}, "missing 'type'"),
        ({"buildings": {"mine": {"effects": [{"type": "teleport"}]}}}, "unknown effect type"),
        ({"buildings": {"mine": {"effects": "yield"}}}, "must be a list"),
        ({"buildings": {"mine": "not a mapping"}}, "must be a mapping"),
        ({"buildings": ["mine"]}, "mapping of items"),
        ({"achievements": {"a": {"levels": [{"level": 1}]}}}, "missing 'condition'"),
        ({"shinies": {"s": {"chance": "often"}}}, "invalid chance"),
        ({"buildings": {"mine": {"cost": {"gold": 10}, "scaling": "quadratic"}}}, "Unknown cost scaling"),
        ({"buildings": {"mine": {"scaling": "exponential", "growth": "fast"}}}, "Invalid growth rate"),
    ],
)
def test_malformed_item_aborts_load(catalog, message):
    with pytest.raises(ParseError, match=message):
        ContentRegistry(catalog)


def test_one_bad_item_fails_everything():
    catalog = _make_catalog()
    catalog["upgrades"]["broken"] = {"cost": {"gold": "x"}}
    with pytest.raises(ParseError):
        ContentRegistry(catalog)


def test_catalog_must_be_mapping():
    with pytest.raises(ParseError):
        ContentRegistry(["resources"])  # type: ignore[arg-type]


# ── Effect parsing ──────────────────────────────────────────────────


def test_effect_shorthand():
    eff = parse_effect("yield:gold:if (a > 1) 2")
    assert eff.type is EffectType.YIELD
    assert eff.target == "gold"
    assert eff.expression == "if (a > 1) 2"

    spawn = parse_effect("spawn:nugget")
    assert spawn.type is EffectType.SPAWN
    assert spawn.expression == ""


def test_effect_shorthand_needs_target():
    with pytest.raises(ParseError, match="shorthand"):
        parse_effect("yield")


def test_effect_type_case_insensitive():
    assert parse_effect({"type": "Multiply", "target": "gold", "value": 3}).value == 3.0


def test_parse_chance():
    assert parse_chance(None) is None
    assert parse_chance(25) == 25.0
    assert parse_chance("12.5%") == 12.5
    assert parse_chance(" 40 % ") == 40.0
    with pytest.raises(ParseError):
        parse_chance(True)


# ── Plugins ─────────────────────────────────────────────────────────


class _QuestPlugin(ContentPlugin):
    def categories(self) -> Iterable[str]:
        return ["quests"]

    def create(self, category: str, key: str, data: Mapping[str, Any]) -> ContentItem:
        if "goal" not in data:
            raise KeyError("goal")
        return ContentItem(
            category=category,
            key=key,
            name=f"Quest: {key}",
            properties={"goal": data["goal"]},
        )


def test_plugin_builds_custom_category():
    registry = ContentRegistry(
        {"quests": {"dragon": {"goal": "slay"}}}, plugins=[_QuestPlugin()]
    )
    quest = registry.get_content("quests", "dragon")
    assert quest.name == "Quest: dragon"
    assert quest.get("goal") == "slay"


def test_plugin_failure_becomes_parse_error():
    with pytest.raises(ParseError, match="Plugin failed"):
        ContentRegistry({"quests": {"dragon": {}}}, plugins=[_QuestPlugin()])


def test_custom_category_without_plugin_is_generic():
    registry = ContentRegistry({"pets": {"cat": {"name": "Cat", "lives": 9}}})
    assert registry.get_content("pets", "cat").get("lives") == 9
