"""Tests for the offline progress simulator."""
import pytest

from idlecore.content import ContentRegistry
from idlecore.economy import EconomyEngine
from idlecore.simulator import SECONDS_PER_DAY, GameSimulator


def _make_economy() -> EconomyEngine:
    return EconomyEngine(ContentRegistry({
        "resources": {"gold": {"initial": 10}},
        "buildings": {
            "farm": {
                "cost": {"gold": 10},
                "scaling": "fixed",
                "effects": [{"type": "yield", "target": "gold", "expression": "count"}],
            },
        },
        "upgrades": {
            "plough": {"cost": {"gold": 5}},
        },
    }), clock=lambda: 0.0)


def test_simulate_player_history():
    economy = _make_economy()
    player = economy.create_player("p1")
    report = GameSimulator(economy).simulate_player(player, 3)

    assert report.days == 3
    assert [s.day for s in report.history] == [1, 2, 3]
    # Day 1: one farm (10 gold), plough unaffordable, then +1.
    assert report.history[0].purchases == ["farm"]
    assert report.history[0].resources == {"gold": 1}
    assert report.history[0].rates == {"gold": 1.0}
    assert player.last_update == 3 * SECONDS_PER_DAY


def test_buys_once_per_key_per_day():
    economy = _make_economy()
    player = economy.create_player("p1")
    player.resources["gold"] = 100
    report = GameSimulator(economy).simulate_player(player, 1)
    assert report.history[0].purchases == ["farm", "plough"]
    assert report.history[0].buildings == {"farm": 1}


def test_report_helpers():
    economy = _make_economy()
    report = GameSimulator(economy).simulate_player(economy.create_player("p1"), 2)
    assert report.resource_names() == ["gold"]
    assert report.resource_series("gold") == [(1, 1), (2, 2)]
    assert report.final_resources == {"gold": 2}
    assert report.total_purchases == 1


def test_zero_days():
    economy = _make_economy()
    report = GameSimulator(economy).simulate_player(economy.create_player("p1"), 0)
    assert report.history == []
    assert report.final_resources == {}


def test_negative_days():
    economy = _make_economy()
    with pytest.raises(ValueError):
        GameSimulator(economy).simulate_player(economy.create_player("p1"), -1)


def test_run_many_players():
    reports = GameSimulator(_make_economy(), seed=7).run(3, 2)
    assert list(reports) == ["sim_player_0", "sim_player_1", "sim_player_2"]
    assert len({tuple(r.final_resources.items()) for r in reports.values()}) == 1
