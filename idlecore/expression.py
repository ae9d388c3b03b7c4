"""Sandboxed formula evaluator for yields, costs and unlock conditions.

Formulas use a small C-like grammar::

    building * 2 + have('upgrade_x')
    gold:max >= 1000 && prestige > 0 ? 2 : 1
    if (gold > 10 and have('mine')) roundr(gold:ps / 3)

Nothing is ever handed to Python's ``eval``: the text is tokenized and parsed
into a private node tree that only knows numbers, booleans, strings, player
variables and the built-in functions registered in ``BUILTINS``.
"""

from __future__ import annotations

import functools
import json
import logging
import math
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Mapping, NamedTuple

from idlecore._types import (
    ARITHMETIC,
    COMPARISONS,
    PRESENCE_PREFIX,
    Value,
    Variables,
    to_float,
    truthy,
)
from idlecore.cache import ExpirationCache
from idlecore.errors import EvaluationError

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300.0

RANDOM_FUNCTIONS = frozenset({"random", "frandom", "chance", "roundr"})
_RANDOM_CALL = re.compile(r"\b(?:%s)\s*\(" % "|".join(sorted(RANDOM_FUNCTIONS)))


# ── Tokenizer ────────────────────────────────────────────────────────


class _Token(NamedTuple):
    kind: str
    text: str
    pos: int


_TOKEN_SPEC = [
    ("WS", r"\s+"),
    ("NUMBER", r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"),
    ("STRING", r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\""),
    ("BRACKET", r"\[[^\[\]]+\]"),
    ("NAME", r"[A-Za-z_][A-Za-z0-9_]*(?::(?:max|earned|ps)\b)?"),
    ("OP", r"\*\*|&&|\|\||==|!=|<=|>=|[-+*/%<>!?:(),]"),
]
_TOKEN_RE = re.compile("|".join(f"(?P<{name}>{pattern})" for name, pattern in _TOKEN_SPEC))
_STRING_RE = re.compile(r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"")
_WORD_AND = re.compile(r"\band\b(?!\s*\()")
_WORD_OR = re.compile(r"\bor\b(?!\s*\()")


def tokenize(formula: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(formula):
        match = _TOKEN_RE.match(formula, pos)
        if match is None:
            raise EvaluationError(
                f"Syntax error in {formula!r}: unexpected character {formula[pos]!r} at {pos}"
            )
        kind = match.lastgroup
        if kind != "WS":
            tokens.append(_Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(_Token("END", "", pos))
    return tokens


# ── Preprocessing ────────────────────────────────────────────────────


def preprocess(formula: str) -> str:
    """Rewrite ``if (cond) rest`` into ``cond ? rest : 0``."""
    text = formula.strip()
    if not text.startswith("if "):
        return text

    body = text[3:].lstrip()
    if not body.startswith("("):
        raise EvaluationError(f"Syntax error in {formula!r}: 'if' must be followed by '('")

    depth = 0
    end = -1
    for i, char in enumerate(body):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                end = i
                break
    if end == -1:
        raise EvaluationError(
            f"Syntax error in {formula!r}: invalid if statement, mismatched parentheses"
        )

    condition = _rewrite_words(body[: end + 1])
    consequent = body[end + 1 :].strip() or "1"
    return f"{condition} ? {consequent} : 0"


def _rewrite_words(condition: str) -> str:
    """Turn ``and``/``or`` words outside string literals into ``&&``/``||``."""
    pieces: list[str] = []
    last = 0
    for match in _STRING_RE.finditer(condition):
        pieces.append(_swap_words(condition[last : match.start()]))
        pieces.append(match.group())
        last = match.end()
    pieces.append(_swap_words(condition[last:]))
    return "".join(pieces)


def _swap_words(text: str) -> str:
    return _WORD_OR.sub("||", _WORD_AND.sub("&&", text))


# ── Node tree ────────────────────────────────────────────────────────


@dataclass
class _Context:
    variables: Mapping[str, Any]
    rng: random.Random


class _Node(ABC):
    @abstractmethod
    def evaluate(self, ctx: _Context) -> Value: ...


class _Literal(_Node):
    def __init__(self, value: Value) -> None:
        self.value = value

    def evaluate(self, ctx: _Context) -> Value:
        return self.value


class _Variable(_Node):
    def __init__(self, name: str) -> None:
        self.name = name

    def evaluate(self, ctx: _Context) -> Value:
        try:
            return ctx.variables[self.name]
        except KeyError:
            raise EvaluationError(f"Undefined variable: {self.name!r}") from None


class _Negate(_Node):
    def __init__(self, operand: _Node) -> None:
        self.operand = operand

    def evaluate(self, ctx: _Context) -> Value:
        return -_number(self.operand.evaluate(ctx), "-")


class _Not(_Node):
    def __init__(self, operand: _Node) -> None:
        self.operand = operand

    def evaluate(self, ctx: _Context) -> Value:
        return not _truth(self.operand.evaluate(ctx), "!")


class _Arithmetic(_Node):
    def __init__(self, op: str, left: _Node, right: _Node) -> None:
        self.op = op
        self.left = left
        self.right = right

    def evaluate(self, ctx: _Context) -> Value:
        left = _number(self.left.evaluate(ctx), self.op)
        right = _number(self.right.evaluate(ctx), self.op)
        if self.op in ("/", "%") and right == 0:
            raise EvaluationError("Division by zero")
        try:
            if self.op == "**":
                return math.pow(left, right)
            return ARITHMETIC[self.op](left, right)
        except (OverflowError, ValueError, ZeroDivisionError) as exc:
            raise EvaluationError(f"Arithmetic error in {self.op!r}: {exc}") from exc


class _Comparison(_Node):
    def __init__(self, op: str, left: _Node, right: _Node) -> None:
        self.op = op
        self.left = left
        self.right = right

    def evaluate(self, ctx: _Context) -> Value:
        left = self.left.evaluate(ctx)
        right = self.right.evaluate(ctx)
        if self.op in ("==", "!="):
            if isinstance(left, str) != isinstance(right, str):
                return self.op == "!="
            if not isinstance(left, str):
                left, right = to_float(left), to_float(right)
        else:
            left, right = _number(left, self.op), _number(right, self.op)
        return COMPARISONS[self.op](left, right)


class _Logical(_Node):
    def __init__(self, op: str, left: _Node, right: _Node) -> None:
        self.op = op
        self.left = left
        self.right = right

    def evaluate(self, ctx: _Context) -> Value:
        left = _truth(self.left.evaluate(ctx), self.op)
        if self.op == "&&" and not left:
            return False
        if self.op == "||" and left:
            return True
        return _truth(self.right.evaluate(ctx), self.op)


class _Ternary(_Node):
    def __init__(self, condition: _Node, then: _Node, otherwise: _Node) -> None:
        self.condition = condition
        self.then = then
        self.otherwise = otherwise

    def evaluate(self, ctx: _Context) -> Value:
        if _truth(self.condition.evaluate(ctx), "?:"):
            return self.then.evaluate(ctx)
        return self.otherwise.evaluate(ctx)


class _Call(_Node):
    def __init__(self, builtin: Builtin, args: list[_Node]) -> None:
        self.builtin = builtin
        self.args = args

    def evaluate(self, ctx: _Context) -> Value:
        return self.builtin(ctx, [a.evaluate(ctx) for a in self.args])


def _number(value: Value, op: str) -> float:
    try:
        return to_float(value)
    except TypeError:
        raise EvaluationError(
            f"Operator {op!r} expects numbers, got {type(value).__name__}"
        ) from None


def _truth(value: Value, op: str) -> bool:
    try:
        return truthy(value)
    except TypeError:
        raise EvaluationError(
            f"Operator {op!r} expects a boolean, got {type(value).__name__}"
        ) from None


# ── Built-in functions ───────────────────────────────────────────────

NUMBER = "number"
BOOL = "bool"
STRING = "string"


@dataclass(frozen=True)
class Builtin:
    """A formula function with declared arity and argument kinds.

    ``kinds`` lists the kind of each positional argument; for variadic
    functions (``max_args`` is None) the last kind repeats.
    """

    name: str
    min_args: int
    max_args: int | None
    kinds: tuple[str, ...]
    fn: Callable[..., Value]

    def __call__(self, ctx: _Context, args: list[Value]) -> Value:
        count = len(args)
        if count < self.min_args or (self.max_args is not None and count > self.max_args):
            raise EvaluationError(f"{self.name}() {self._arity_text()}, got {count}")
        coerced = [self._coerce(i, arg) for i, arg in enumerate(args)]
        return self.fn(ctx, *coerced)

    def _arity_text(self) -> str:
        if self.max_args is None:
            return f"expects at least {self.min_args} arguments"
        if self.min_args == self.max_args:
            noun = "argument" if self.min_args == 1 else "arguments"
            return f"expects {self.min_args} {noun}"
        return f"expects {self.min_args} to {self.max_args} arguments"

    def _coerce(self, index: int, arg: Value) -> Value:
        kind = self.kinds[min(index, len(self.kinds) - 1)]
        if kind == NUMBER:
            if isinstance(arg, str):
                raise EvaluationError(f"{self.name}() expects numeric arguments")
            return to_float(arg)
        if kind == BOOL:
            if not isinstance(arg, bool):
                raise EvaluationError(f"{self.name}() expects boolean arguments")
            return arg
        if not isinstance(arg, str):
            raise EvaluationError(f"{self.name}() expects a string argument")
        return arg


def _have(ctx: _Context, key: str) -> bool:
    flag = PRESENCE_PREFIX + key
    if flag in ctx.variables:
        return to_float(ctx.variables[flag]) > 0
    value = ctx.variables.get(key, 0)
    if isinstance(value, str):
        return bool(value)
    return to_float(value) > 0


def _bounds(args: tuple[float, ...]) -> tuple[float, float]:
    if len(args) == 1:
        return 0.0, args[0]
    return args[0], args[1]


def _random(ctx: _Context, *args: float) -> float:
    low, high = _bounds(args)
    low_i, high_i = int(low), int(high)
    if high_i < low_i:
        raise EvaluationError(f"random() range is empty: {low_i}..{high_i}")
    return float(ctx.rng.randint(low_i, high_i))


def _frandom(ctx: _Context, *args: float) -> float:
    low, high = _bounds(args)
    if high < low:
        raise EvaluationError(f"frandom() range is empty: {low}..{high}")
    return ctx.rng.uniform(low, high)


def _round_half_away(value: float) -> float:
    return math.copysign(math.floor(abs(value) + 0.5), value)


def _roundr(ctx: _Context, value: float) -> float:
    fraction = value - math.floor(value)
    if ctx.rng.random() < fraction:
        return float(math.ceil(value))
    return float(math.floor(value))


def _pow(ctx: _Context, base: float, exp: float) -> float:
    try:
        return math.pow(base, exp)
    except (OverflowError, ValueError, ZeroDivisionError) as exc:
        raise EvaluationError(f"pow({base}, {exp}) failed: {exc}") from exc


BUILTINS: dict[str, Builtin] = {
    b.name: b
    for b in (
        Builtin("have", 1, 1, (STRING,), _have),
        Builtin("no", 1, 1, (STRING,), lambda ctx, key: not _have(ctx, key)),
        Builtin("random", 1, 2, (NUMBER,), _random),
        Builtin("frandom", 1, 2, (NUMBER,), _frandom),
        Builtin("chance", 1, 1, (NUMBER,), lambda ctx, p: ctx.rng.random() * 100 < p),
        Builtin("min", 2, 2, (NUMBER,), lambda ctx, a, b: min(a, b)),
        Builtin("max", 2, 2, (NUMBER,), lambda ctx, a, b: max(a, b)),
        Builtin("floor", 1, 1, (NUMBER,), lambda ctx, x: float(math.floor(x))),
        Builtin("ceil", 1, 1, (NUMBER,), lambda ctx, x: float(math.ceil(x))),
        Builtin("round", 1, 1, (NUMBER,), lambda ctx, x: _round_half_away(x)),
        Builtin("roundr", 1, 1, (NUMBER,), _roundr),
        Builtin("pow", 2, 2, (NUMBER,), _pow),
        Builtin("and", 2, None, (BOOL,), lambda ctx, *args: all(args)),
        Builtin("or", 2, None, (BOOL,), lambda ctx, *args: any(args)),
    )
}


# ── Parser ───────────────────────────────────────────────────────────


class _Parser:
    """Recursive-descent parser, lowest precedence first."""

    def __init__(self, formula: str) -> None:
        self.formula = formula
        self.tokens = tokenize(formula)
        self.index = 0

    def parse(self) -> _Node:
        if self._peek().kind == "END":
            raise EvaluationError("Empty formula")
        node = self._ternary()
        if self._peek().kind != "END":
            raise self._error(f"unexpected {self._peek().text!r}")
        return node

    # helpers

    def _peek(self) -> _Token:
        return self.tokens[self.index]

    def _advance(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _at(self, *ops: str) -> bool:
        token = self._peek()
        return token.kind == "OP" and token.text in ops

    def _expect(self, op: str) -> None:
        if not self._at(op):
            found = self._peek().text or "end of formula"
            raise self._error(f"expected {op!r}, found {found!r}")
        self._advance()

    def _error(self, message: str) -> EvaluationError:
        return EvaluationError(
            f"Syntax error in {self.formula!r} at {self._peek().pos}: {message}"
        )

    # grammar

    def _ternary(self) -> _Node:
        condition = self._or()
        if not self._at("?"):
            return condition
        self._advance()
        then = self._ternary()
        self._expect(":")
        otherwise = self._ternary()
        return _Ternary(condition, then, otherwise)

    def _or(self) -> _Node:
        node = self._and()
        while self._at("||"):
            self._advance()
            node = _Logical("||", node, self._and())
        return node

    def _and(self) -> _Node:
        node = self._comparison()
        while self._at("&&"):
            self._advance()
            node = _Logical("&&", node, self._comparison())
        return node

    def _comparison(self) -> _Node:
        node = self._additive()
        while self._at(*COMPARISONS):
            op = self._advance().text
            node = _Comparison(op, node, self._additive())
        return node

    def _additive(self) -> _Node:
        node = self._multiplicative()
        while self._at("+", "-"):
            op = self._advance().text
            node = _Arithmetic(op, node, self._multiplicative())
        return node

    def _multiplicative(self) -> _Node:
        node = self._unary()
        while self._at("*", "/", "%"):
            op = self._advance().text
            node = _Arithmetic(op, node, self._unary())
        return node

    def _unary(self) -> _Node:
        if self._at("-"):
            self._advance()
            return _Negate(self._unary())
        if self._at("+"):
            self._advance()
            return self._unary()
        if self._at("!"):
            self._advance()
            return _Not(self._unary())
        return self._power()

    def _power(self) -> _Node:
        base = self._primary()
        if self._at("**"):
            self._advance()
            return _Arithmetic("**", base, self._unary())
        return base

    def _primary(self) -> _Node:
        token = self._peek()
        if token.kind == "NUMBER":
            self._advance()
            return _Literal(float(token.text))
        if token.kind == "STRING":
            self._advance()
            return _Literal(_unquote(token.text))
        if token.kind == "BRACKET":
            self._advance()
            return _Variable(token.text[1:-1].strip())
        if token.kind == "NAME":
            self._advance()
            if token.text == "true":
                return _Literal(True)
            if token.text == "false":
                return _Literal(False)
            if self._at("("):
                return self._call(token)
            return _Variable(token.text)
        if self._at("("):
            self._advance()
            node = self._ternary()
            self._expect(")")
            return node
        raise self._error(f"unexpected {token.text or 'end of formula'!r}")

    def _call(self, name: _Token) -> _Node:
        builtin = BUILTINS.get(name.text)
        if builtin is None:
            raise EvaluationError(f"Unknown function: {name.text!r}")
        self._expect("(")
        args: list[_Node] = []
        if not self._at(")"):
            args.append(self._ternary())
            while self._at(","):
                self._advance()
                args.append(self._ternary())
        self._expect(")")
        return _Call(builtin, args)


def _unquote(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text[1:-1])


@functools.lru_cache(maxsize=1024)
def compile_formula(formula: str) -> _Node:
    """Preprocess and parse *formula*; successful parses are memoized."""
    return _Parser(preprocess(formula)).parse()


# ── Engine ───────────────────────────────────────────────────────────


class ExpressionEngine:
    """Evaluates formulas against a player's variable surface with memoization.

    Results are cached per formula text and variable snapshot for ``ttl``
    seconds. Formulas that draw random numbers bypass the cache so every
    evaluation gets a fresh draw.
    """

    def __init__(
        self,
        cache: ExpirationCache | None = None,
        ttl: float = DEFAULT_TTL,
        rng: random.Random | None = None,
    ) -> None:
        self.cache = cache if cache is not None else ExpirationCache()
        self.ttl = ttl
        self.rng = rng or random.Random()

    def inject_rng(self, rng: random.Random) -> None:
        self.rng = rng

    def evaluate(self, formula: str, variables: Variables | None = None) -> float:
        """Evaluate *formula* and return a number (booleans become 1.0/0.0)."""
        variables = variables or {}
        cacheable = _RANDOM_CALL.search(formula) is None
        key = ""
        if cacheable:
            key = _cache_key(formula, variables)
            cached, found = self.cache.get(key)
            if found:
                return cached

        node = compile_formula(formula)
        result = node.evaluate(_Context(variables=variables, rng=self.rng))
        value = _coerce_result(formula, result)
        logger.debug("Evaluated %r -> %s", formula, value)

        if cacheable:
            self.cache.set(key, value, self.ttl)
        return value

    def evaluate_condition(self, formula: str, variables: Variables | None = None) -> bool:
        return self.evaluate(formula, variables) > 0

    def validate(self, formula: str) -> None:
        """Raise EvaluationError if *formula* does not parse."""
        compile_formula(formula)


def _cache_key(formula: str, variables: Variables) -> str:
    return formula + "\x00" + json.dumps(dict(variables), sort_keys=True, default=str)


def _coerce_result(formula: str, result: Value) -> float:
    if isinstance(result, str):
        raise EvaluationError(f"Formula {formula!r} produced a string, expected a number")
    value = to_float(result)
    if math.isnan(value) or math.isinf(value):
        raise EvaluationError(f"Formula {formula!r} produced a non-finite number")
    return value
