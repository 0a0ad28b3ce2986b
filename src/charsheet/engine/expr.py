from __future__ import annotations
from typing import Any, Mapping, Optional
from functools import lru_cache
import math

from py_expression_eval import Parser

# Single global parser; only arithmetic helpers are exposed to content formulas
_parser = Parser()

_parser.functions["min"] = min
_parser.functions["max"] = max
_parser.functions["floor"] = math.floor
_parser.functions["ceil"] = math.ceil

# Attribute abbreviations accepted anywhere a formula may name an attribute
ATTRIBUTE_ALIASES = {
    "str": "strength", "dex": "dexterity", "int": "intelligence", "wil": "will",
    "strength": "strength", "dexterity": "dexterity", "intelligence": "intelligence", "will": "will",
}

# LRU-compiled AST cache
@lru_cache(maxsize=4096)
def _compile_expr(expr: str):
    return _parser.parse(expr)

def normalize_number(value: Any) -> int | float:
    f = float(value)
    return int(f) if f.is_integer() else f

def eval_expr(expr: str | int | float, variables: Optional[Mapping[str, Any]] = None) -> int | float:
    """
    Evaluate an arithmetic expression (or numeric literal) with named variables.
    Raises whatever the parser raises on malformed input or unknown variables.
    """
    if isinstance(expr, (int, float)):
        return expr
    ast = _compile_expr(expr.strip())
    return normalize_number(ast.evaluate(dict(variables or {})))

def eval_int(expr: str | int | float, variables: Optional[Mapping[str, Any]] = None) -> int:
    return int(math.floor(eval_expr(expr, variables)))

def attribute_variables(attributes: Mapping[str, int]) -> dict[str, int]:
    """Expose attributes under full names and abbreviations, in lower and upper case."""
    out: dict[str, int] = {}
    for alias, full in ATTRIBUTE_ALIASES.items():
        if full in attributes:
            val = int(attributes[full])
            out[alias] = val
            out[alias.upper()] = val
    return out

LEVEL_ALIASES = ("level", "LEVEL", "lvl", "LVL")

def character_variables(attributes: Mapping[str, int], level: int) -> dict[str, int]:
    """Attribute variables plus the character level under LEVEL and LVL."""
    out = attribute_variables(attributes)
    for alias in LEVEL_ALIASES:
        out[alias] = level
    return out

def expr_cache_info() -> str:
    info = _compile_expr.cache_info()
    return f"expr-cache: hits={info.hits}, misses={info.misses}, size={info.currsize}/{info.maxsize}"
