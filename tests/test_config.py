"""Tests for YAML config loading and catalog validation."""
import textwrap

import pytest

from idlecore.config import EngineConfig, GameConfig, load_config
from idlecore.errors import ParseError
from idlecore.expression import DEFAULT_TTL


def _write(tmp_path, text: str):
    path = tmp_path / "game.yaml"
    path.write_text(textwrap.dedent(text), encoding="utf-8")
    return path


def test_load_config(tmp_path):
    path = _write(tmp_path, """
        engine:
          name: Test Game
          tick_interval: 0.5
          max_workers: 2
        content:
          resources:
            gold: {initial: 10}
    """)
    config = load_config(path)
    assert config.engine.name == "Test Game"
    assert config.engine.tick_interval == 0.5
    assert config.engine.max_workers == 2
    assert config.engine.cache_ttl == DEFAULT_TTL
    registry = config.build_registry()
    assert registry.get_content("resources", "gold").initial == 10


def test_engine_section_optional(tmp_path):
    config = load_config(_write(tmp_path, "content: {resources: {gold: {}}}\n"))
    assert config.engine == EngineConfig()


def test_missing_file(tmp_path):
    with pytest.raises(ParseError, match="Cannot read config"):
        load_config(tmp_path / "nope.yaml")


def test_invalid_yaml(tmp_path):
    with pytest.raises(ParseError, match="Invalid YAML"):
        load_config(_write(tmp_path, "content: [unclosed\n"))


def test_missing_content(tmp_path):
    with pytest.raises(ParseError, match="content"):
        load_config(_write(tmp_path, "engine: {name: Empty}\n"))


@pytest.mark.parametrize(
    "engine, message",
    [
        ({"tick_interval": 0}, "tick_interval"),
        ({"max_workers": 0}, "max_workers"),
        ({"cache_ttl": -1}, "cache_ttl"),
        ({"cache_max_entries": 0}, "cache_max_entries"),
        ({"tick_interval": "soon"}, "Invalid engine setting"),
        ({"workers": 4}, "Unknown engine settings"),
    ],
)
def test_engine_config_rejects(engine, message):
    with pytest.raises(ParseError, match=message):
        EngineConfig.from_mapping(engine)


def test_content_must_be_mapping():
    with pytest.raises(ParseError):
        GameConfig.from_mapping({"content": ["gold"]})


# ── validate ────────────────────────────────────────────────────────


def _make_config(**overrides) -> GameConfig:
    content = {
        "resources": {"gold": {}},
        "buildings": {
            "mine": {
                "cost": {"gold": 10},
                "effects": [{"type": "yield", "target": "gold", "expression": "count * 2"}],
            },
        },
        "shinies": {"nugget": {}},
    }
    content.update(overrides)
    return GameConfig(content=content)


def test_validate_clean():
    assert _make_config().validate() == []


def test_validate_unknown_cost_resource():
    errors = _make_config(upgrades={"drill": {"cost": {"silver": 5}}}).validate()
    assert len(errors) == 1
    assert "silver" in errors[0]


def test_validate_effect_targets():
    errors = _make_config(upgrades={
        "a": {"effects": [{"type": "multiply", "target": "wood", "value": 2}]},
        "b": {"effects": [{"type": "spawn", "target": "ghost"}]},
        "c": {"effects": [{"type": "reset", "target": "stone"}]},
        "d": {"effects": [{"type": "reset", "target": "all"}, {"type": "grant", "target": "nugget"}]},
    }).validate()
    assert len(errors) == 3
    assert any("'wood'" in e for e in errors)
    assert any("'ghost'" in e for e in errors)
    assert any("'stone'" in e for e in errors)


def test_validate_formulas():
    errors = _make_config(
        upgrades={"a": {"effects": [{"type": "yield", "target": "gold", "expression": "2 +"}]}},
        achievements={"rich": {"condition": "gold >= (1", "rewards": {}}},
    ).validate()
    assert len(errors) == 2
    assert all("invalid formula" in e for e in errors)
