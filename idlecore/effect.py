from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto


class EffectType(Enum):
    YIELD = "yield"
    MULTIPLY = "multiply"
    GRANT = "grant"
    SPAWN = "spawn"
    RESET = "reset"


class EffectPhase(Enum):
    PASSIVE = auto()
    IMMEDIATE = auto()


DEFAULT_PHASE: dict[EffectType, EffectPhase] = {
    EffectType.YIELD: EffectPhase.PASSIVE,
    EffectType.MULTIPLY: EffectPhase.PASSIVE,
    EffectType.GRANT: EffectPhase.IMMEDIATE,
    EffectType.SPAWN: EffectPhase.IMMEDIATE,
    EffectType.RESET: EffectPhase.IMMEDIATE,
}


@dataclass(frozen=True)
class EffectDef:
    """A single typed state transition declared by a content item.

    Passive effects (yield, multiply) are collected by the update cycle;
    immediate ones (grant, spawn, reset) fire when their owner is bought,
    spawned or prestiged.
    """

    type: EffectType
    target: str = ""
    value: float = 0.0
    expression: str = ""
    condition: str = ""

    @property
    def phase(self) -> EffectPhase:
        return DEFAULT_PHASE[self.type]

    @property
    def formula(self) -> str:
        """Formula producing the effect amount; a static value when no expression is set."""
        if self.expression:
            return self.expression
        return repr(float(self.value))


@dataclass(frozen=True)
class EffectBlock:
    """Ordered effects sharing one optional gate, evaluated once per block."""

    effects: tuple[EffectDef, ...] = field(default_factory=tuple)
    condition: str = ""
    chance: float | None = None

    @property
    def gated(self) -> bool:
        return bool(self.condition) or self.chance is not None


class Effect:
    """Convenience constructors for common effect patterns."""

    @staticmethod
    def yields(target: str, expression: str, condition: str = "") -> EffectDef:
        """Adds the formula result to *target* every tick."""
        return EffectDef(
            type=EffectType.YIELD,
            target=target,
            expression=expression,
            condition=condition,
        )

    @staticmethod
    def multiply(target: str, value: float, condition: str = "") -> EffectDef:
        return EffectDef(
            type=EffectType.MULTIPLY, target=target, value=value, condition=condition
        )

    @staticmethod
    def grant(target: str, condition: str = "") -> EffectDef:
        """Activates the shiny timer *target*."""
        return EffectDef(type=EffectType.GRANT, target=target, condition=condition)

    @staticmethod
    def spawn(target: str, condition: str = "") -> EffectDef:
        """Applies the effects of shiny *target* once."""
        return EffectDef(type=EffectType.SPAWN, target=target, condition=condition)

    @staticmethod
    def reset(target: str = "all") -> EffectDef:
        return EffectDef(type=EffectType.RESET, target=target)
