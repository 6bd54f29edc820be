"""Compiler for the optional per-signal ``formula`` expressions.

A formula is a scalar arithmetic expression over a single variable ``x``
(the value after scale and offset), e.g. ``"x * 1.8 + 32"`` or
``"sqrt(x) / 2"``.  The expression is parsed with :mod:`ast`, checked against
a whitelist of node types, and turned into a tree of closures once, when the
mapping is loaded.  Nothing is passed to ``eval``.
"""
from __future__ import annotations

import ast
import math
import operator
from typing import Callable

from .exceptions import FormulaError

VARIABLE = "x"

_BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    # float power so integer constants cannot build huge integers
    ast.Pow: lambda a, b: operator.pow(float(a), b),
}

_UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}

_FUNCTIONS: dict[str, Callable[..., float]] = {
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
    "sqrt": math.sqrt,
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "pow": math.pow,
    "floor": math.floor,
    "ceil": math.ceil,
}

_CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "e": math.e,
}

_Node = Callable[[float], float]


class Formula:
    """A compiled formula. Call it with the processed value."""

    __slots__ = ("source", "_fn")

    def __init__(self, source: str, fn: _Node) -> None:
        self.source = source
        self._fn = fn

    def __call__(self, x: float) -> float:
        try:
            result = self._fn(x)
        except (ArithmeticError, ValueError, TypeError) as e:
            raise FormulaError(f"formula {self.source!r} failed for x={x}: {e}") from e

        if isinstance(result, complex):
            raise FormulaError(f"formula {self.source!r} produced a complex result for x={x}")

        value = float(result)
        if not math.isfinite(value):
            raise FormulaError(f"formula {self.source!r} produced {value} for x={x}")
        return value

    def __repr__(self) -> str:
        return f"Formula({self.source!r})"


def compile_formula(source: str) -> Formula:
    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise FormulaError(f"invalid formula {source!r}: {e.msg}") from e

    return Formula(source, _compile(tree.body, source))


def _compile(node: ast.AST, source: str) -> _Node:
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise FormulaError(f"unsupported constant {node.value!r} in formula {source!r}")
        value = node.value
        return lambda x: value

    if isinstance(node, ast.Name):
        if node.id == VARIABLE:
            return lambda x: x
        if node.id in _CONSTANTS:
            const = _CONSTANTS[node.id]
            return lambda x: const
        raise FormulaError(f"unknown name {node.id!r} in formula {source!r}")

    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        op = _BINARY_OPS[type(node.op)]
        left = _compile(node.left, source)
        right = _compile(node.right, source)
        return lambda x: op(left(x), right(x))

    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        unary = _UNARY_OPS[type(node.op)]
        operand = _compile(node.operand, source)
        return lambda x: unary(operand(x))

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            raise FormulaError(f"unsupported function call in formula {source!r}")
        if node.keywords:
            raise FormulaError(f"keyword arguments are not allowed in formula {source!r}")
        fn = _FUNCTIONS[node.func.id]
        args = [_compile(arg, source) for arg in node.args]
        return lambda x: fn(*(arg(x) for arg in args))

    raise FormulaError(f"unsupported expression {type(node).__name__} in formula {source!r}")
