from __future__ import annotations
import logging
import random
import re
from typing import Callable, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from .errors import DiceFormulaError
from .expr import eval_expr

logger = logging.getLogger(__name__)

MAX_DICE_PER_TERM = 100
MAX_DIE_SIZE = 1000
MAX_ADVANTAGE_LEVEL = 10
MAX_EXPLOSIONS = 100

# d44, d66 and d88 read two dice as tens and ones
DOUBLE_DIGIT_SIZES = {44: 4, 66: 6, 88: 8}

TokenKind = Literal["dice", "number", "variable", "operator"]
ExplodeMode = Literal["none", "first", "all"]

# Dice terms: optional count (digits or a variable name), size, then postfixes in the
# order explode (! or !!), vicious (v), advantage (aN) or disadvantage (dN)
_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<dice>(?:\d+|[A-Za-z_]+)?[dD]\d+(?:!!|!)?[vV]?(?:[aAdD]\d*)?(?![A-Za-z0-9_]))"
    r"|(?P<number>\d+)|(?P<variable>[A-Za-z_][A-Za-z0-9_]*)|(?P<operator>[-+*/()]))"
)
_DICE_RE = re.compile(
    r"(?P<count>\d+|[A-Za-z_]+)?[dD](?P<size>\d+)(?P<explode>!!|!)?(?P<vicious>[vV])?"
    r"(?:(?P<edge>[aAdD])(?P<level>\d*))?"
)

class DiceToken(BaseModel):
    kind: TokenKind
    text: str
    value: Optional[int] = None
    count: int = 0
    count_variable: Optional[str] = None
    die_size: int = 0
    double_digit: bool = False
    explode: ExplodeMode = "none"
    vicious: bool = False
    advantage: int = 0
    rolls: List[int] = Field(default_factory=list)
    kept: List[int] = Field(default_factory=list)
    dropped: List[int] = Field(default_factory=list)
    vicious_rolls: List[int] = Field(default_factory=list)

    @property
    def can_crit(self) -> bool:
        return self.kind == "dice" and not self.double_digit

class DiceRollResult(BaseModel):
    total: int
    formula: str
    substituted_formula: str
    tokens: List[DiceToken] = Field(default_factory=list)
    num_criticals: int = 0
    is_fumble: bool = False
    advantage_level: int = 0

    @property
    def dice_tokens(self) -> List[DiceToken]:
        return [t for t in self.tokens if t.kind == "dice"]

def roll_die(rng: random.Random, size: int) -> int:
    return rng.randint(1, size)

def _dice_token(formula: str, raw: str) -> DiceToken:
    m = _DICE_RE.fullmatch(raw)
    count_s, size = m.group("count"), int(m.group("size"))
    tok = DiceToken(kind="dice", text=raw, die_size=size, double_digit=size in DOUBLE_DIGIT_SIZES)
    if count_s is None or count_s.isdigit():
        tok.count = int(count_s or 1)
        if tok.count < 1 or tok.count > MAX_DICE_PER_TERM:
            raise DiceFormulaError(formula, f"dice count out of range in '{raw}'")
    else:
        tok.count_variable = count_s
    if size < 1 or size > MAX_DIE_SIZE:
        raise DiceFormulaError(formula, f"die size out of range in '{raw}'")
    if m.group("explode"):
        tok.explode = "all" if m.group("explode") == "!!" else "first"
    tok.vicious = bool(m.group("vicious"))
    if tok.double_digit and (tok.explode != "none" or tok.vicious):
        raise DiceFormulaError(formula, f"double-digit dice cannot explode or crit in '{raw}'")
    if m.group("edge"):
        level = int(m.group("level") or 1)
        if level > MAX_ADVANTAGE_LEVEL:
            raise DiceFormulaError(formula, f"advantage level out of range in '{raw}'")
        tok.advantage = level if m.group("edge") in "aA" else -level
    return tok

def tokenize(formula: str) -> List[DiceToken]:
    tokens: List[DiceToken] = []
    pos = 0
    text = formula.rstrip()
    while pos < len(text):
        m = _TOKEN_RE.match(text, pos)
        if not m or m.end() == pos:
            raise DiceFormulaError(formula, f"unexpected character at position {pos}")
        pos = m.end()
        kind = m.lastgroup
        raw = m.group(kind)
        if kind == "dice":
            tokens.append(_dice_token(formula, raw))
        elif kind == "number":
            tokens.append(DiceToken(kind="number", text=raw, value=int(raw)))
        else:
            tokens.append(DiceToken(kind=kind, text=raw))  # type: ignore[arg-type]
    if not tokens:
        raise DiceFormulaError(formula, "empty formula")
    return tokens

def _lookup(variables: Mapping[str, int], name: str) -> Optional[int]:
    for key in (name, name.lower(), name.upper()):
        if key in variables:
            return int(variables[key])
    return None

def _num_text(v: int) -> str:
    return f"({v})" if v < 0 else str(v)

def _keep(draws: List[int], level: int, keep: int) -> List[int]:
    """Keep `keep` draws in roll order, dropping the lowest (level > 0) or highest (level < 0)."""
    if level == 0 or len(draws) <= keep:
        return list(draws[:keep])
    ranked = sorted(range(len(draws)), key=lambda i: draws[i], reverse=level > 0)
    chosen = sorted(ranked[:keep])
    return [draws[i] for i in chosen]

class DiceEvaluator:
    """
    Evaluates dice formulas such as "2d6+STR", "1d20+3", "STRd6+2" or "(1d8+mana)*2".

    Variables are resolved from the mapping returned by `variables` (a mapping or a
    zero-arg callable, so live character values can be read at roll time) merged
    with any per-call overrides. A variable may also stand in for a dice count.

    Every die of a term is drawn 1 + |level| times and the highest (advantage) or
    lowest (disadvantage) draw is kept. The level is the term's own postfix ("1d20a2",
    "d8d") plus, on d20 terms only, the call's `advantage_level`. Double-digit dice
    (d44, d66, d88) roll a tens die and a ones die; advantage adds draws and drops
    the lowest, keeping the rest in roll order.

    "!" explodes the first die of a term and "!!" every die: each maximum face rolls
    one more die. "v" adds one extra non-exploding die per maximum face.
    """

    def __init__(self, rng: Optional[random.Random] = None,
                 variables: Mapping[str, int] | Callable[[], Mapping[str, int]] | None = None):
        self.rng = rng or random.Random()
        self._variables = variables

    def _current_variables(self, extra: Optional[Mapping[str, int]]) -> dict[str, int]:
        src = self._variables() if callable(self._variables) else (self._variables or {})
        merged = dict(src)
        if extra:
            merged.update(extra)
        return merged

    def _explode(self, tok: DiceToken, face: int) -> List[int]:
        extra: List[int] = []
        while face == tok.die_size and len(extra) < MAX_EXPLOSIONS:
            face = roll_die(self.rng, tok.die_size)
            extra.append(face)
        return extra

    def _roll_double_digit(self, tok: DiceToken, level: int) -> None:
        face = DOUBLE_DIGIT_SIZES[tok.die_size]
        for _ in range(tok.count):
            draws = [roll_die(self.rng, face) for _ in range(2 + abs(level))]
            tens, ones = _keep(draws, level, 2)
            dropped = list(draws)
            dropped.remove(tens)
            dropped.remove(ones)
            tok.rolls.extend(draws)
            tok.kept.append(tens * 10 + ones)
            tok.dropped.extend(dropped)

    def _roll_term(self, tok: DiceToken, advantage_level: int) -> None:
        level = tok.advantage + (advantage_level if tok.die_size == 20 else 0)
        if tok.double_digit:
            self._roll_double_digit(tok, level)
            tok.value = sum(tok.kept)
            return
        draws_per_die = 1 + abs(level)
        base: List[int] = []
        for _ in range(tok.count):
            draws = [roll_die(self.rng, tok.die_size) for _ in range(draws_per_die)]
            [keep] = _keep(draws, level, 1)
            dropped = list(draws)
            dropped.remove(keep)
            tok.rolls.extend(draws)
            tok.dropped.extend(dropped)
            base.append(keep)
        tok.kept = list(base)
        for i, face in enumerate(base):
            if tok.explode == "all" or (tok.explode == "first" and i == 0):
                tok.kept.extend(self._explode(tok, face))
        if tok.vicious:
            crits = sum(1 for v in tok.kept if v == tok.die_size)
            tok.vicious_rolls = [roll_die(self.rng, tok.die_size) for _ in range(crits)]
        tok.value = sum(tok.kept) + sum(tok.vicious_rolls)

    def _resolve_count(self, formula: str, tok: DiceToken, known: Mapping[str, int]) -> str:
        """Bind a variable dice count; returns the term text with the count substituted."""
        if tok.count_variable is None:
            return tok.text
        val = _lookup(known, tok.count_variable)
        if val is None:
            raise DiceFormulaError(formula, f"unknown variable '{tok.count_variable}'")
        if val < 0 or val > MAX_DICE_PER_TERM:
            raise DiceFormulaError(formula, f"dice count out of range in '{tok.text}'")
        tok.count = val
        return f"{val}{tok.text[len(tok.count_variable):]}"

    def evaluate(self, formula: str, *, advantage_level: int = 0, allow_criticals: bool = True,
                 allow_fumbles: bool = True, variables: Optional[Mapping[str, int]] = None) -> DiceRollResult:
        tokens = tokenize(formula)
        known = self._current_variables(variables)

        substituted: list[str] = []
        arithmetic: list[str] = []
        for tok in tokens:
            if tok.kind == "variable":
                val = _lookup(known, tok.text)
                if val is None:
                    raise DiceFormulaError(formula, f"unknown variable '{tok.text}'")
                tok.value = val
                substituted.append(_num_text(val))
                arithmetic.append(_num_text(val))
            elif tok.kind == "dice":
                text = self._resolve_count(formula, tok, known)
                self._roll_term(tok, advantage_level)
                substituted.append(text)
                arithmetic.append(str(tok.value))
            else:
                substituted.append(tok.text)
                arithmetic.append(tok.text)

        try:
            raw_total = eval_expr(" ".join(arithmetic))
        except ZeroDivisionError as e:
            raise DiceFormulaError(formula, "division by zero") from e
        except Exception as e:
            raise DiceFormulaError(formula, str(e) or e.__class__.__name__) from e

        dice = [t for t in tokens if t.can_crit]
        num_crits = 0
        if allow_criticals:
            num_crits = sum(1 for t in dice for v in t.kept if v == t.die_size)
        is_fumble = False
        if allow_fumbles:
            # only a lone d20 can fumble
            single = next((t for t in dice if t.die_size == 20 and t.count == 1), None)
            is_fumble = bool(single and single.kept and single.kept[0] == 1)

        result = DiceRollResult(
            total=int(raw_total // 1),
            formula=formula,
            substituted_formula="".join(substituted),
            tokens=tokens,
            num_criticals=num_crits,
            is_fumble=is_fumble,
            advantage_level=advantage_level,
        )
        logger.debug("rolled %s -> %s = %d", formula, result.substituted_formula, result.total)
        return result
