from __future__ import annotations

import json
import math
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping

from idlecore._types import PRESENCE_PREFIX
from idlecore.errors import PersistenceError

if TYPE_CHECKING:
    from idlecore.content import ContentRegistry

LOG_LIMIT = 10


@dataclass
class ShinyState:
    """Activation timer for a shiny."""

    active: bool = False
    last_spawn: float = 0.0


class PlayerState:
    """Mutable per-player container for balances, counts and progress."""

    def __init__(self, player_id: str, registry: ContentRegistry | None = None) -> None:
        self.player_id = player_id
        self.resources: dict[str, int] = {}
        self.buildings: dict[str, int] = {}
        self.upgrades: dict[str, bool] = {}
        self.multipliers: dict[str, float] = {}
        self.achievement_levels: dict[str, int] = {}
        self.shinies: dict[str, ShinyState] = {}
        self.prestige: int = 0
        self.log: deque[str] = deque(maxlen=LOG_LIMIT)
        self.resource_max: dict[str, int] = {}
        self.resource_earned: dict[str, int] = {}
        self.resource_rate: dict[str, float] = {}
        self.last_update: float = 0.0

        if registry is not None:
            for name, item in registry.resources().items():
                amount = max(0, item.initial)
                self.resources[name] = amount
                self.resource_max[name] = amount
                self.resource_earned[name] = amount
                self.multipliers[name] = 1.0
            for name, item in registry.buildings().items():
                self.buildings[name] = max(0, item.initial)
            for name in registry.upgrades():
                self.upgrades[name] = False

    # ── Queries ──────────────────────────────────────────────────────

    def resource(self, name: str) -> int:
        return self.resources.get(name, 0)

    def building_count(self, name: str) -> int:
        return self.buildings.get(name, 0)

    def has_upgrade(self, name: str) -> bool:
        return self.upgrades.get(name, False)

    def multiplier(self, name: str) -> float:
        return self.multipliers.get(name, 1.0)

    def achievement_level(self, name: str) -> int:
        return self.achievement_levels.get(name, 0)

    def has(self, key: str) -> bool:
        """True if *key* names a held resource, owned building/upgrade or unlocked achievement."""
        return (
            self.resource(key) > 0
            or self.building_count(key) > 0
            or self.has_upgrade(key)
            or self.achievement_level(key) > 0
        )

    def can_afford(self, cost: Mapping[str, float]) -> bool:
        return all(self.resource(r) >= amount for r, amount in cost.items())

    def variables(self) -> dict[str, float]:
        """The variable surface formulas are evaluated against."""
        variables: dict[str, float] = {}
        for name, amount in self.resources.items():
            variables[name] = float(amount)
            variables[f"{name}:max"] = float(self.resource_max.get(name, amount))
            variables[f"{name}:earned"] = float(self.resource_earned.get(name, 0))
            variables[f"{name}:ps"] = float(self.resource_rate.get(name, 0.0))
        for name, count in self.buildings.items():
            variables[name] = float(count)
        for name, owned in self.upgrades.items():
            variables[name] = 1.0 if owned else 0.0
        for name, level in self.achievement_levels.items():
            variables[name] = float(level)
        owned = set(self.resources) | set(self.buildings) | set(self.upgrades)
        for name in owned | set(self.achievement_levels):
            variables[PRESENCE_PREFIX + name] = 1.0 if self.has(name) else 0.0
        variables["prestige"] = float(self.prestige)
        return variables

    # ── Mutation ─────────────────────────────────────────────────────

    def add_resource(self, name: str, amount: float) -> None:
        """Add whole units of *amount* (truncated); the balance never drops below 0."""
        delta = int(amount)
        current = self.resource(name)
        balance = max(0, current + delta)
        self.resources[name] = balance
        if delta > 0:
            self.resource_earned[name] = self.resource_earned.get(name, 0) + delta
        if balance > self.resource_max.get(name, 0):
            self.resource_max[name] = balance

    def remove_resource(self, name: str, amount: float) -> None:
        self.resources[name] = max(0, self.resource(name) - math.ceil(amount))

    def spend_resources(self, cost: Mapping[str, float]) -> None:
        for name, amount in cost.items():
            self.remove_resource(name, amount)

    def add_building(self, name: str, count: int = 1) -> None:
        self.buildings[name] = max(0, self.building_count(name) + count)

    def add_upgrade(self, name: str) -> None:
        self.upgrades[name] = True

    def set_achievement_level(self, name: str, level: int) -> None:
        """Raise the unlocked level; lower values are ignored."""
        if level > self.achievement_level(name):
            self.achievement_levels[name] = level

    def add_log(self, message: str) -> None:
        self.log.append(message)

    def reset_progress(self, registry: ContentRegistry) -> None:
        """Prestige reset: balances back to catalog initial, buildings to 0."""
        resources = registry.resources()
        for name in self.resources:
            item = resources.get(name)
            self.resources[name] = max(0, item.initial) if item is not None else 0
            self.resource_rate[name] = 0.0
        for name in self.buildings:
            self.buildings[name] = 0
        self.prestige += 1

    # ── Serialization ────────────────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.player_id,
            "resources": dict(self.resources),
            "buildings": dict(self.buildings),
            "upgrades": dict(self.upgrades),
            "multipliers": dict(self.multipliers),
            "achievement_levels": dict(self.achievement_levels),
            "shinies": {
                name: {"active": s.active, "last_spawn": s.last_spawn}
                for name, s in self.shinies.items()
            },
            "prestige": self.prestige,
            "log": list(self.log),
            "resource_max": dict(self.resource_max),
            "resource_earned": dict(self.resource_earned),
            "resource_rate": dict(self.resource_rate),
            "last_update": self.last_update,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> PlayerState:
        try:
            state = cls(str(data["id"]))
            state.resources = {k: int(v) for k, v in data.get("resources", {}).items()}
            state.buildings = {k: int(v) for k, v in data.get("buildings", {}).items()}
            state.upgrades = {k: bool(v) for k, v in data.get("upgrades", {}).items()}
            state.multipliers = {
                k: float(v) for k, v in data.get("multipliers", {}).items()
            }
            state.achievement_levels = {
                k: int(v) for k, v in data.get("achievement_levels", {}).items()
            }
            state.shinies = {
                k: ShinyState(active=bool(v["active"]), last_spawn=float(v["last_spawn"]))
                for k, v in data.get("shinies", {}).items()
            }
            state.prestige = int(data.get("prestige", 0))
            state.log.extend(str(m) for m in data.get("log", []))
            state.resource_max = {
                k: int(v) for k, v in data.get("resource_max", {}).items()
            }
            state.resource_earned = {
                k: int(v) for k, v in data.get("resource_earned", {}).items()
            }
            state.resource_rate = {
                k: float(v) for k, v in data.get("resource_rate", {}).items()
            }
            state.last_update = float(data.get("last_update", 0.0))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise PersistenceError(f"Malformed player data: {exc}") from exc
        return state

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_dict(), sort_keys=True).encode("utf-8")

    @classmethod
    def from_bytes(cls, blob: bytes) -> PlayerState:
        try:
            data = json.loads(blob)
        except (TypeError, ValueError) as exc:
            raise PersistenceError(f"Unreadable player blob: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError("Player blob must decode to an object")
        return cls.from_dict(data)
