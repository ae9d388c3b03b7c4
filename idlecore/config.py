from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

import yaml

from idlecore.content import ContentPlugin, ContentRegistry
from idlecore.effect import EffectType
from idlecore.errors import EvaluationError, ParseError
from idlecore.expression import DEFAULT_TTL, compile_formula

logger = logging.getLogger(__name__)


@dataclass
class EngineConfig:
    """Runtime settings for the update loop and formula cache."""

    name: str = "Untitled"
    tick_interval: float = 1.0
    max_workers: int = 8
    cache_ttl: float = DEFAULT_TTL
    cache_max_entries: int = 10_000

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> EngineConfig:
        data = data or {}
        if not isinstance(data, Mapping):
            raise ParseError("'engine' section must be a mapping")
        unknown = set(data) - {
            "name", "tick_interval", "max_workers", "cache_ttl", "cache_max_entries",
        }
        if unknown:
            raise ParseError(f"Unknown engine settings: {sorted(unknown)!r}")
        config = cls()
        try:
            if "name" in data:
                config.name = str(data["name"])
            if "tick_interval" in data:
                config.tick_interval = float(data["tick_interval"])
            if "max_workers" in data:
                config.max_workers = int(data["max_workers"])
            if "cache_ttl" in data:
                config.cache_ttl = float(data["cache_ttl"])
            if "cache_max_entries" in data:
                config.cache_max_entries = int(data["cache_max_entries"])
        except (TypeError, ValueError) as exc:
            raise ParseError(f"Invalid engine setting: {exc}") from exc
        if config.tick_interval <= 0:
            raise ParseError(f"tick_interval must be positive, got {config.tick_interval!r}")
        if config.max_workers < 1:
            raise ParseError(f"max_workers must be at least 1, got {config.max_workers!r}")
        if config.cache_ttl < 0:
            raise ParseError(f"cache_ttl must not be negative, got {config.cache_ttl!r}")
        if config.cache_max_entries < 1:
            raise ParseError(
                f"cache_max_entries must be at least 1, got {config.cache_max_entries!r}"
            )
        return config


@dataclass
class GameConfig:
    """Engine settings plus the raw content catalog."""

    engine: EngineConfig = field(default_factory=EngineConfig)
    content: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> GameConfig:
        if not isinstance(data, Mapping):
            raise ParseError(f"Config must be a mapping, got {type(data).__name__}")
        content = data.get("content")
        if content is None:
            raise ParseError("Config is missing the 'content' section")
        if not isinstance(content, Mapping):
            raise ParseError("'content' section must be a mapping of categories")
        return cls(engine=EngineConfig.from_mapping(data.get("engine")), content=content)

    def build_registry(self, plugins: tuple[ContentPlugin, ...] = ()) -> ContentRegistry:
        return ContentRegistry(self.content, plugins)

    def validate(self, registry: ContentRegistry | None = None) -> list[str]:
        """Check for common catalog errors. Returns list of error messages."""
        registry = registry or self.build_registry()
        errors: list[str] = []
        resources = set(registry.resources())
        shinies = set(registry.shinies())

        for category in registry.categories():
            for key, item in registry.get_all_content(category).items():
                for cur_id in item.cost:
                    if cur_id not in resources:
                        errors.append(
                            f"{category} {key!r} references unknown resource {cur_id!r} in cost"
                        )
                for eff in item.effects:
                    if eff.type in (EffectType.YIELD, EffectType.MULTIPLY):
                        if eff.target not in resources:
                            errors.append(
                                f"{category} {key!r} has effect targeting unknown resource {eff.target!r}"
                            )
                    elif eff.type in (EffectType.GRANT, EffectType.SPAWN):
                        if eff.target not in shinies:
                            errors.append(
                                f"{category} {key!r} has effect targeting unknown shiny {eff.target!r}"
                            )
                    elif eff.type is EffectType.RESET:
                        if eff.target != "all" and eff.target not in resources:
                            errors.append(
                                f"{category} {key!r} resets unknown resource {eff.target!r}"
                            )
                    for formula in (eff.expression, eff.condition):
                        errors.extend(_check_formula(category, key, formula))
                for level in item.levels:
                    errors.extend(_check_formula(category, key, level.condition))
                condition = item.get("condition")
                if isinstance(condition, str):
                    errors.extend(_check_formula(category, key, condition))

        return errors


def load_config(path: str | os.PathLike[str]) -> GameConfig:
    """Read a YAML file with a ``content`` section and optional ``engine`` settings."""
    try:
        with open(path, encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except OSError as exc:
        raise ParseError(f"Cannot read config {os.fspath(path)!r}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ParseError(f"Invalid YAML in {os.fspath(path)!r}: {exc}") from exc
    config = GameConfig.from_mapping(data or {})
    logger.info("Loaded config %r from %s", config.engine.name, os.fspath(path))
    return config


def _check_formula(category: str, key: str, formula: str) -> list[str]:
    if not formula:
        return []
    try:
        compile_formula(formula)
    except EvaluationError as exc:
        return [f"{category} {key!r} has invalid formula {formula!r}: {exc}"]
    return []
