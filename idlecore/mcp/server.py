"""MCP server exposing the player command surface for interactive playtesting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from mcp.server.fastmcp import FastMCP

from idlecore.config import GameConfig
from idlecore.errors import IdleCoreError
from idlecore.persistence import Database, InMemoryDatabase
from idlecore.service import CommandResult, GameService

# Maximum update cycles per advance() call (24 hours of 1s ticks)
_MAX_TICKS = 86400


@dataclass
class _GameHolder:
    """Holds the game name and the service every tool goes through."""

    name: str
    service: GameService


def _round_cost(cost: dict[str, float]) -> dict[str, float]:
    return {k: round(v, 2) for k, v in cost.items()}


def _result(result: CommandResult) -> dict[str, Any]:
    return {"success": result.success, "message": result.message}


# ── Tool logic functions (testable without MCP protocol) ────────────


def _tool_get_game_info(holder: _GameHolder) -> dict[str, Any]:
    registry = holder.service.economy.registry
    return {
        "name": holder.name,
        "categories": {
            category: sorted(registry.get_all_content(category))
            for category in registry.categories()
        },
    }


def _tool_create_player(holder: _GameHolder, player_id: str) -> dict[str, Any]:
    return _result(holder.service.create_player(player_id))


def _tool_get_player_state(holder: _GameHolder, player_id: str) -> dict[str, Any]:
    try:
        player = holder.service.get_player(player_id)
    except IdleCoreError as exc:
        return {"error": str(exc)}
    return {
        "player_id": player.player_id,
        "prestige": player.prestige,
        "resources": {
            key: {
                "current": amount,
                "max": player.resource_max.get(key, amount),
                "earned": player.resource_earned.get(key, 0),
                "rate": round(player.resource_rate.get(key, 0.0), 4),
            }
            for key, amount in player.resources.items()
        },
        "buildings": dict(player.buildings),
        "upgrades": sorted(k for k, owned in player.upgrades.items() if owned),
        "achievements": dict(player.achievement_levels),
        "active_shinies": sorted(k for k, s in player.shinies.items() if s.active),
        "log": list(player.log),
    }


def _tool_get_available_purchases(holder: _GameHolder, player_id: str) -> dict[str, Any]:
    try:
        player = holder.service.get_player(player_id)
    except IdleCoreError as exc:
        return {"error": str(exc)}
    economy = holder.service.economy
    result = []
    for item in economy.available_purchases(player):
        cost = economy.compute_cost(player, item.key)
        result.append({
            "key": item.key,
            "name": item.name,
            "category": item.category,
            "owned": player.building_count(item.key),
            "affordable": player.can_afford(cost),
            "current_cost": _round_cost(cost),
        })
    return {"purchases": result}


def _tool_get_item_info(holder: _GameHolder, category: str, key: str) -> dict[str, Any]:
    try:
        item = holder.service.economy.registry.get_content(category, key)
    except IdleCoreError as exc:
        return {"error": str(exc)}
    return {
        "category": item.category,
        "key": item.key,
        "name": item.name,
        "type": item.type,
        "description": item.description,
        "cost": _round_cost(dict(item.cost)),
        "requirements": list(item.requirements),
        "effects": [
            {
                "type": eff.type.value,
                "target": eff.target,
                "formula": eff.formula,
                "condition": eff.condition,
            }
            for eff in item.effects
        ],
        "levels": [
            {"level": lv.level, "condition": lv.condition, "rewards": dict(lv.rewards)}
            for lv in item.levels
        ],
    }


def _tool_buy(holder: _GameHolder, player_id: str, key: str) -> dict[str, Any]:
    return _result(holder.service.buy(player_id, key))


def _tool_sell(holder: _GameHolder, player_id: str, key: str) -> dict[str, Any]:
    return _result(holder.service.sell(player_id, key))


def _tool_prestige(holder: _GameHolder, player_id: str) -> dict[str, Any]:
    return _result(holder.service.perform_prestige(player_id))


def _tool_advance(holder: _GameHolder, player_id: str, ticks: int = 1) -> dict[str, Any]:
    if ticks < 1:
        return {"error": "Ticks must be at least 1"}
    if ticks > _MAX_TICKS:
        return {"error": f"Cannot advance more than {_MAX_TICKS} ticks per call"}
    result = holder.service.advance(player_id, ticks)
    if not result.success:
        return _result(result)
    state = _tool_get_player_state(holder, player_id)
    return {"success": True, "ticks": ticks, "resources": state["resources"]}


def _tool_run_command(holder: _GameHolder, player_id: str, command: str) -> dict[str, Any]:
    return _result(holder.service.execute(player_id, command))


# ── Server factory ──────────────────────────────────────────────────


def create_server(config: GameConfig, database: Database | None = None) -> FastMCP:
    """Create an MCP server over a GameService built from *config*."""
    holder = _GameHolder(
        name=config.engine.name,
        service=GameService.from_config(config, database or InMemoryDatabase()),
    )

    mcp = FastMCP(
        name=f"idlecore: {config.engine.name}",
    )

    @mcp.tool()
    def get_game_info() -> dict[str, Any]:
        """Get the game name and every catalog key grouped by category."""
        return _tool_get_game_info(holder)

    @mcp.tool()
    def create_player(player_id: str) -> dict[str, Any]:
        """Register a new player seeded with the catalog's initial values."""
        return _tool_create_player(holder, player_id)

    @mcp.tool()
    def get_player_state(player_id: str) -> dict[str, Any]:
        """Get a player's balances, rates, buildings, upgrades, achievements and log."""
        return _tool_get_player_state(holder, player_id)

    @mcp.tool()
    def get_available_purchases(player_id: str) -> dict[str, Any]:
        """List upgrades and buildings whose prerequisites are met, with current cost."""
        return _tool_get_available_purchases(holder, player_id)

    @mcp.tool()
    def get_item_info(category: str, key: str) -> dict[str, Any]:
        """Get one catalog item: cost, requirements, effects and achievement levels."""
        return _tool_get_item_info(holder, category, key)

    @mcp.tool()
    def buy(player_id: str, key: str) -> dict[str, Any]:
        """Buy one upgrade or building. Returns success/failure with a message."""
        return _tool_buy(holder, player_id, key)

    @mcp.tool()
    def sell(player_id: str, key: str) -> dict[str, Any]:
        """Sell one building for half its base cost."""
        return _tool_sell(holder, player_id, key)

    @mcp.tool()
    def prestige(player_id: str) -> dict[str, Any]:
        """Pay the prestige cost and reset progress for a higher prestige level."""
        return _tool_prestige(holder, player_id)

    @mcp.tool()
    def advance(player_id: str, ticks: int = 1) -> dict[str, Any]:
        """Run the given number of 1s update cycles for a player (max 86400)."""
        return _tool_advance(holder, player_id, ticks)

    @mcp.tool()
    def run_command(player_id: str, command: str) -> dict[str, Any]:
        """Run a text command such as 'status', 'buy mine' or 'help'."""
        return _tool_run_command(holder, player_id, command)

    return mcp
