from __future__ import annotations

import operator
from typing import Any, Callable, Mapping

Value = float | bool | str
Variables = Mapping[str, float]

# Ownership flag per key, whichever category holds it. Read by have() and no().
PRESENCE_PREFIX = "have:"

COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "==": operator.eq,
    "!=": operator.ne,
}

ARITHMETIC: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
    "**": operator.pow,
}


def is_number(value: Any) -> bool:
    """True for int and float literals; bools are not numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def to_float(value: Any) -> float:
    """Numeric view of a formula value: bools become 1.0/0.0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if is_number(value):
        return float(value)
    raise TypeError(f"Expected a number, got {type(value).__name__}")


def truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    raise TypeError(f"Expected a boolean or number, got {type(value).__name__}")
