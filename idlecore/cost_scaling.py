from __future__ import annotations

from typing import Any, Callable, Mapping

from idlecore.errors import ParseError

CostFn = Callable[[Mapping[str, float], int], dict[str, float]]


class CostScaling:
    """Determines how a building's price changes with the number already owned."""

    def __init__(self, fn: CostFn) -> None:
        self._fn = fn

    def compute(self, base_cost: Mapping[str, float], owned: int) -> dict[str, float]:
        return self._fn(base_cost, owned)

    @classmethod
    def fixed(cls) -> CostScaling:
        """Price never changes."""
        return cls(lambda base, _owned: dict(base))

    @classmethod
    def linear_by_unit(cls) -> CostScaling:
        """Price = base * (owned + 1). The default for buildings."""

        def _compute(base: Mapping[str, float], owned: int) -> dict[str, float]:
            return {k: v * (owned + 1) for k, v in base.items()}

        return cls(_compute)

    @classmethod
    def exponential(cls, growth_rate: float = 1.15) -> CostScaling:
        """Price = base * growth_rate^owned."""

        def _compute(base: Mapping[str, float], owned: int) -> dict[str, float]:
            mult = growth_rate ** owned
            return {k: v * mult for k, v in base.items()}

        return cls(_compute)

    @classmethod
    def from_properties(cls, properties: Mapping[str, Any]) -> CostScaling:
        """Pick a scaling from an item's ``scaling``/``growth`` catalog fields."""
        kind = str(properties.get("scaling") or "linear").lower()
        if kind == "linear":
            return cls.linear_by_unit()
        if kind == "fixed":
            return cls.fixed()
        if kind == "exponential":
            growth = properties.get("growth", 1.15)
            if isinstance(growth, bool) or not isinstance(growth, (int, float)):
                raise ParseError(f"Invalid growth rate: {growth!r}")
            return cls.exponential(float(growth))
        raise ParseError(f"Unknown cost scaling: {kind!r}")
