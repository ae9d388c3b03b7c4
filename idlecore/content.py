"""Catalog ingestion: freeform category → key → property bag into ContentItems."""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from idlecore._types import is_number
from idlecore.cost_scaling import CostScaling
from idlecore.effect import EffectBlock, EffectDef, EffectType
from idlecore.errors import NotFoundError, ParseError

logger = logging.getLogger(__name__)

RESOURCES = "resources"
BUILDINGS = "buildings"
UPGRADES = "upgrades"
ACHIEVEMENTS = "achievements"
SHINIES = "shinies"
PRESTIGE = "prestige"

BUILTIN_CATEGORIES = (RESOURCES, BUILDINGS, UPGRADES, ACHIEVEMENTS, SHINIES, PRESTIGE)

_KNOWN_FIELDS = frozenset(
    {"name", "type", "description", "cost", "effects", "initial", "reqs"}
)
_ACHIEVEMENT_FIELDS = frozenset({"levels", "condition", "rewards"})

_EMPTY: Mapping[str, Any] = MappingProxyType({})


@dataclass(frozen=True)
class AchievementLevel:
    """One tier of an achievement: unlocked when *condition* holds."""

    level: int
    condition: str
    rewards: Mapping[str, float] = field(default_factory=lambda: _EMPTY)


@dataclass(frozen=True)
class ContentItem:
    """Typed catalog entry with an open bag for category-specific fields."""

    category: str
    key: str
    name: str = ""
    type: str = ""
    description: str = ""
    cost: Mapping[str, float] = field(default_factory=lambda: _EMPTY)
    effects: tuple[EffectDef, ...] = ()
    initial: int = 0
    requirements: tuple[str, ...] = ()
    levels: tuple[AchievementLevel, ...] = ()
    properties: Mapping[str, Any] = field(default_factory=lambda: _EMPTY)

    def __post_init__(self) -> None:
        if not self.name:
            object.__setattr__(self, "name", self.key)

    def get(self, prop: str, default: Any = None) -> Any:
        return self.properties.get(prop, default)

    def effects_of(self, type: EffectType) -> list[EffectDef]:
        return [e for e in self.effects if e.type is type]

    def effect_block(self) -> EffectBlock:
        """All effects as one block gated by the item's ``condition``/``chance``."""
        return EffectBlock(
            effects=self.effects,
            condition=str(self.properties.get("condition") or ""),
            chance=parse_chance(self.properties.get("chance")),
        )


class ContentPlugin(ABC):
    """Extension point that builds items for custom categories."""

    @abstractmethod
    def categories(self) -> Iterable[str]: ...

    @abstractmethod
    def create(self, category: str, key: str, data: Mapping[str, Any]) -> ContentItem: ...


class ContentRegistry:
    """Read-only table of content items, built all-or-nothing from a catalog."""

    def __init__(
        self,
        catalog: Mapping[str, Any] | None = None,
        plugins: Iterable[ContentPlugin] = (),
    ) -> None:
        self._plugins: dict[str, ContentPlugin] = {}
        for plugin in plugins:
            for category in plugin.categories():
                self._plugins[category] = plugin
        self._items: dict[str, Mapping[str, ContentItem]] = {}
        if catalog is not None:
            self._items = self._parse_catalog(catalog)
        total = sum(len(v) for v in self._items.values())
        logger.info(
            "Loaded %d content items across %d categories", total, len(self._items)
        )

    @classmethod
    def load(
        cls, catalog: Mapping[str, Any], plugins: Iterable[ContentPlugin] = ()
    ) -> ContentRegistry:
        return cls(catalog, plugins)

    # ── Queries ──────────────────────────────────────────────────────

    def get_content(self, category: str, key: str) -> ContentItem:
        item = self._items.get(category, _EMPTY).get(key)
        if item is None:
            raise NotFoundError(f"Content not found: {key!r} in category {category!r}")
        return item

    def get_all_content(self, category: str) -> Mapping[str, ContentItem]:
        return self._items.get(category, _EMPTY)

    def has(self, category: str, key: str) -> bool:
        return key in self._items.get(category, _EMPTY)

    def categories(self) -> list[str]:
        return list(self._items)

    def resources(self) -> Mapping[str, ContentItem]:
        return self.get_all_content(RESOURCES)

    def buildings(self) -> Mapping[str, ContentItem]:
        return self.get_all_content(BUILDINGS)

    def upgrades(self) -> Mapping[str, ContentItem]:
        return self.get_all_content(UPGRADES)

    def achievements(self) -> Mapping[str, ContentItem]:
        return self.get_all_content(ACHIEVEMENTS)

    def shinies(self) -> Mapping[str, ContentItem]:
        return self.get_all_content(SHINIES)

    def prestige(self) -> ContentItem:
        return self.get_content(PRESTIGE, PRESTIGE)

    # ── Conversion ───────────────────────────────────────────────────

    def _parse_catalog(
        self, catalog: Mapping[str, Any]
    ) -> dict[str, Mapping[str, ContentItem]]:
        if not isinstance(catalog, Mapping):
            raise ParseError(
                f"Catalog must be a mapping of categories, got {type(catalog).__name__}"
            )
        items: dict[str, Mapping[str, ContentItem]] = {}
        for category, entries in catalog.items():
            category = str(category)
            if entries is None:
                entries = {}
            if not isinstance(entries, Mapping):
                raise ParseError(f"Category {category!r} must be a mapping of items")
            parsed: dict[str, ContentItem] = {}
            for key, data in entries.items():
                key = str(key)
                parsed[key] = self._parse_item(category, key, data)
            items[category] = MappingProxyType(parsed)
        return items

    def _parse_item(self, category: str, key: str, data: Any) -> ContentItem:
        where = f"{category}.{key}"
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ParseError(f"Item {where!r} must be a mapping, got {type(data).__name__}")

        plugin = self._plugins.get(category)
        if plugin is not None and category not in BUILTIN_CATEGORIES:
            try:
                return plugin.create(category, key, data)
            except ParseError:
                raise
            except Exception as exc:
                raise ParseError(f"Plugin failed to build {where!r}: {exc}") from exc

        known = _KNOWN_FIELDS
        if category == ACHIEVEMENTS:
            known = known | _ACHIEVEMENT_FIELDS
        properties = {
            str(k): copy.deepcopy(v) for k, v in data.items() if k not in known
        }
        if "chance" in properties:
            parse_chance(properties["chance"], where)
        if category == BUILDINGS:
            try:
                CostScaling.from_properties(properties)
            except ParseError as exc:
                raise ParseError(f"{where!r}: {exc}") from exc

        levels: tuple[AchievementLevel, ...] = ()
        if category == ACHIEVEMENTS:
            levels = _parse_levels(data, where)

        return ContentItem(
            category=category,
            key=key,
            name=_string(data.get("name"), "name", where),
            type=_string(data.get("type"), "type", where),
            description=_string(data.get("description"), "description", where),
            cost=_number_map(data.get("cost"), "cost", where),
            effects=parse_effects(data.get("effects"), where),
            initial=int(_number(data.get("initial", 0), "initial", where)),
            requirements=_string_list(data.get("reqs"), "reqs", where),
            levels=levels,
            properties=MappingProxyType(properties),
        )


# ── Field coercion ──────────────────────────────────────────────────


def parse_effects(raw: Any, where: str = "") -> tuple[EffectDef, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise ParseError(f"{where!r}: effects must be a list")
    return tuple(parse_effect(e, f"{where}.effects[{i}]") for i, e in enumerate(raw))


def parse_effect(raw: Any, where: str = "") -> EffectDef:
    """Build an EffectDef from a mapping or a ``type:target[:expression]`` string."""
    if isinstance(raw, str):
        parts = raw.split(":", 2)
        if len(parts) < 2:
            raise ParseError(f"{where!r}: effect shorthand must be 'type:target[:expression]'")
        raw = {"type": parts[0], "target": parts[1]}
        if len(parts) > 2:
            raw["expression"] = parts[2]
    if not isinstance(raw, Mapping):
        raise ParseError(f"{where!r}: effect must be a mapping, got {type(raw).__name__}")

    type_name = raw.get("type")
    if not type_name:
        raise ParseError(f"{where!r}: effect is missing 'type'")
    try:
        etype = EffectType(str(type_name).strip().lower())
    except ValueError:
        raise ParseError(f"{where!r}: unknown effect type {type_name!r}") from None

    return EffectDef(
        type=etype,
        target=_string(raw.get("target"), "target", where),
        value=_number(raw.get("value", 0), "value", where),
        expression=_string(raw.get("expression"), "expression", where),
        condition=_string(raw.get("condition"), "condition", where),
    )


def parse_chance(raw: Any, where: str = "") -> float | None:
    """Accept ``25``, ``12.5`` or ``"25%"``; None means ungated."""
    if raw is None or raw == "":
        return None
    if is_number(raw):
        return float(raw)
    if isinstance(raw, str):
        text = raw.strip().removesuffix("%").strip()
        try:
            return float(text)
        except ValueError:
            pass
    raise ParseError(f"{where!r}: invalid chance {raw!r}")


def _parse_levels(data: Mapping[str, Any], where: str) -> tuple[AchievementLevel, ...]:
    raw_levels = data.get("levels")
    if raw_levels is None:
        condition = _string(data.get("condition"), "condition", where)
        if not condition:
            return ()
        return (
            AchievementLevel(
                level=1,
                condition=condition,
                rewards=_number_map(data.get("rewards"), "rewards", where),
            ),
        )
    if not isinstance(raw_levels, (list, tuple)):
        raise ParseError(f"{where!r}: levels must be a list")
    levels = []
    for i, raw in enumerate(raw_levels):
        lwhere = f"{where}.levels[{i}]"
        if not isinstance(raw, Mapping):
            raise ParseError(f"{lwhere!r}: level must be a mapping")
        number = _number(raw.get("level"), "level", lwhere)
        if number != int(number):
            raise ParseError(f"{lwhere!r}: level must be a whole number, got {number}")
        condition = _string(raw.get("condition"), "condition", lwhere)
        if not condition:
            raise ParseError(f"{lwhere!r}: level is missing 'condition'")
        levels.append(
            AchievementLevel(
                level=int(number),
                condition=condition,
                rewards=_number_map(raw.get("rewards"), "rewards", lwhere),
            )
        )
    return tuple(levels)


def _number(value: Any, name: str, where: str) -> float:
    if not is_number(value):
        raise ParseError(f"{where!r}: field {name!r} must be a number, got {value!r}")
    return float(value)


def _string(value: Any, name: str, where: str) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if is_number(value):
        return str(value)
    raise ParseError(f"{where!r}: field {name!r} must be a string, got {value!r}")


def _string_list(value: Any, name: str, where: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, (list, tuple)):
        raise ParseError(f"{where!r}: field {name!r} must be a list of keys")
    return tuple(_string(v, name, where) for v in value)


def _number_map(value: Any, name: str, where: str) -> Mapping[str, float]:
    if value is None:
        return _EMPTY
    if not isinstance(value, Mapping):
        raise ParseError(f"{where!r}: field {name!r} must be a mapping")
    return MappingProxyType(
        {str(k): _number(v, f"{name}.{k}", where) for k, v in value.items()}
    )
