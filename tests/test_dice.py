import pytest

from charsheet.engine.dice import DiceEvaluator, tokenize
from charsheet.engine.errors import DiceFormulaError

def test_variable_substitution_and_total(rng):
    rng.queue(3, 4)
    res = DiceEvaluator(rng, variables={"STR": 4}).evaluate("2d6+STR")
    assert res.total == 11
    assert res.substituted_formula == "2d6+4"
    [dice] = res.dice_tokens
    assert dice.rolls == [3, 4]
    assert dice.value == 7

def test_variable_lookup_ignores_case(rng):
    rng.queue(2)
    res = DiceEvaluator(rng, variables={"STR": 3}).evaluate("1d4+str")
    assert res.total == 5

def test_negative_variables_are_parenthesised(rng):
    rng.queue(3)
    res = DiceEvaluator(rng, variables={"STR": -1}).evaluate("1d4+STR")
    assert res.substituted_formula == "1d4+(-1)"
    assert res.total == 2

def test_callable_variables_read_at_roll_time(rng):
    live = {"LEVEL": 2}
    dice = DiceEvaluator(rng, variables=lambda: live)
    assert dice.evaluate("LEVEL*3").total == 6
    live["LEVEL"] = 4
    assert dice.evaluate("LEVEL*3").total == 12

def test_per_call_variables_override(rng):
    dice = DiceEvaluator(rng, variables={"mana": 1})
    assert dice.evaluate("mana+1", variables={"mana": 5}).total == 6

def test_division_floors(rng):
    assert DiceEvaluator(rng).evaluate("7/2").total == 3
    assert DiceEvaluator(rng).evaluate("(1+2)*3").total == 9

def test_advantage_keeps_highest_d20(rng):
    rng.queue(5, 17)
    res = DiceEvaluator(rng).evaluate("1d20+1", advantage_level=1)
    [d20] = res.dice_tokens
    assert d20.kept == [17]
    assert d20.dropped == [5]
    assert res.total == 18
    assert res.advantage_level == 1

def test_disadvantage_keeps_lowest_of_extra_draws(rng):
    rng.queue(12, 4, 9)
    res = DiceEvaluator(rng).evaluate("1d20", advantage_level=-2)
    assert res.total == 4
    assert sorted(res.dice_tokens[0].dropped) == [9, 12]

def test_advantage_ignores_non_d20_terms(rng):
    rng.queue(3)
    res = DiceEvaluator(rng).evaluate("1d6", advantage_level=2)
    assert res.total == 3
    assert rng.values == []

def test_criticals_count_max_faces(rng):
    rng.queue(6, 6, 2)
    res = DiceEvaluator(rng).evaluate("3d6")
    assert res.num_criticals == 2

    rng.queue(6)
    assert DiceEvaluator(rng).evaluate("1d6", allow_criticals=False).num_criticals == 0

def test_natural_one_on_d20_fumbles(rng):
    rng.queue(1)
    assert DiceEvaluator(rng).evaluate("1d20+5").is_fumble

    rng.queue(1)
    assert not DiceEvaluator(rng).evaluate("1d20+5", allow_fumbles=False).is_fumble

def test_fumble_uses_the_kept_die(rng):
    rng.queue(1, 15)
    assert not DiceEvaluator(rng).evaluate("1d20", advantage_level=1).is_fumble

    rng.queue(15, 1)
    assert DiceEvaluator(rng).evaluate("1d20", advantage_level=-1).is_fumble

def test_multi_die_d20_never_fumbles(rng):
    rng.queue(1, 20)
    res = DiceEvaluator(rng).evaluate("2d20")
    assert not res.is_fumble
    assert res.num_criticals == 1

    rng.queue(1, 20)
    assert DiceEvaluator(rng).evaluate("1d20+1d20").is_fumble

def test_variable_dice_count(rng):
    rng.queue(1, 2, 3, 4)
    res = DiceEvaluator(rng, variables={"STR": 4}).evaluate("STRd6+2")
    assert res.total == 12
    assert res.substituted_formula == "4d6+2"

    rng.queue(5, 5)
    assert DiceEvaluator(rng, variables={"LVL": 2}).evaluate("LVLd8").total == 10

    with pytest.raises(DiceFormulaError, match="unknown variable 'RANK'"):
        DiceEvaluator(rng).evaluate("RANKd6")

def test_zero_variable_count_rolls_nothing(rng):
    res = DiceEvaluator(rng, variables={"level": 0}).evaluate("LEVELd6+1")
    assert res.total == 1
    assert rng.values == []

def test_exploding_first_die_only(rng):
    rng.queue(6, 6, 6, 2)
    res = DiceEvaluator(rng).evaluate("2d6!")
    [tok] = res.dice_tokens
    assert tok.kept == [6, 6, 6, 2]
    assert res.total == 20
    assert res.num_criticals == 3

def test_exploding_all_dice(rng):
    rng.queue(4, 4, 1, 2)
    res = DiceEvaluator(rng).evaluate("2d4!!")
    assert res.dice_tokens[0].kept == [4, 4, 1, 2]
    assert res.total == 11
    assert res.num_criticals == 2

def test_vicious_adds_a_die_per_critical(rng):
    rng.queue(8, 3, 5)
    res = DiceEvaluator(rng).evaluate("2d8v")
    [tok] = res.dice_tokens
    assert tok.vicious_rolls == [5]
    assert res.total == 16
    assert res.num_criticals == 1

def test_exploding_advantage_counts_chained_criticals(rng):
    rng.queue(3, 20, 20, 7)
    res = DiceEvaluator(rng).evaluate("1d20!a")
    [tok] = res.dice_tokens
    assert tok.dropped == [3]
    assert tok.kept == [20, 20, 7]
    assert res.num_criticals == 2
    assert res.total == 47

def test_postfix_advantage_and_disadvantage(rng):
    rng.queue(2, 5)
    assert DiceEvaluator(rng).evaluate("1d6a").total == 5
    rng.queue(14, 3, 9)
    res = DiceEvaluator(rng).evaluate("1d20d2+5")
    assert res.total == 8
    assert res.is_fumble is False

def test_postfix_stacks_with_call_advantage_on_d20(rng):
    rng.queue(4, 9, 2)
    res = DiceEvaluator(rng).evaluate("1d20a", advantage_level=1)
    assert res.total == 9
    assert sorted(res.dice_tokens[0].dropped) == [2, 4]

def test_double_digit_dice(rng):
    rng.queue(6, 6)
    res = DiceEvaluator(rng).evaluate("d66")
    assert res.total == 66
    assert res.num_criticals == 0

    rng.queue(2, 3, 4)
    res = DiceEvaluator(rng).evaluate("d66a")
    assert res.total == 34
    assert res.dice_tokens[0].dropped == [2]

    rng.queue(1, 4)
    assert DiceEvaluator(rng).evaluate("d44").total == 14

def test_tokenize_dice_postfixes():
    tok = tokenize("1d20!va2")[0]
    assert (tok.explode, tok.vicious, tok.advantage) == ("first", True, 2)
    tok = tokenize("3d6!!d")[0]
    assert (tok.explode, tok.advantage) == ("all", -1)
    tok = tokenize("STRd6")[0]
    assert (tok.kind, tok.count_variable) == ("dice", "STR")
    assert [t.kind for t in tokenize("mad6x+1")] == ["variable", "operator", "number"]

def test_tokenize_kinds():
    kinds = [t.kind for t in tokenize("(d8 + INT) * 2")]
    assert kinds == ["operator", "dice", "operator", "variable", "operator", "operator", "number"]
    assert tokenize("d8")[0].count == 1

@pytest.mark.parametrize("formula,reason", [
    ("FOO+2", "unknown variable"),
    ("2d6 $ 3", "unexpected character"),
    ("", "empty formula"),
    ("101d6", "dice count out of range"),
    ("1d1001", "die size out of range"),
    ("d66!", "double-digit dice cannot explode"),
    ("1d20a11", "advantage level out of range"),
])
def test_bad_formulas_raise(rng, formula, reason):
    with pytest.raises(DiceFormulaError, match=reason):
        DiceEvaluator(rng).evaluate(formula)

def test_division_by_zero_is_a_formula_error(rng):
    rng.queue(3)
    with pytest.raises(DiceFormulaError, match="division by zero"):
        DiceEvaluator(rng).evaluate("1d6/0")
