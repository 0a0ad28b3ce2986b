from __future__ import annotations
from typing import Optional

from .schema_models import AbilityDefinition, MAX_TIER

# Cantrip scaling_bonus applies once at each of these character levels
CANTRIP_SCALING_LEVELS = (5, 10, 15, 20)

def mana_cost(ability: AbilityDefinition, target_tier: int) -> int:
    # base tier plus one unit per tier cast above it; cantrips are free
    if ability.tier == 0:
        return 0
    return ability.tier + max(0, target_tier - ability.tier)

def slot_effective_tier(ability: AbilityDefinition, tier_access: int) -> int:
    if ability.tier == 0:
        return 0
    return max(0, min(tier_access, MAX_TIER))

def cantrip_scaling_steps(level: int) -> int:
    return sum(1 for lv in CANTRIP_SCALING_LEVELS if level >= lv)

def _append_term(formula: str, term: str, times: int) -> str:
    term = term.strip()
    if not term or times <= 0:
        return formula
    if term[0] not in "+-":
        term = "+" + term
    return formula + term * times

def scaled_formula(ability: AbilityDefinition, effective_tier: int, character_level: int) -> Optional[str]:
    """Dice formula with upcast (tiered) or level scaling (cantrip) terms appended."""
    if not ability.dice_formula:
        return None
    formula = ability.dice_formula.strip()
    if ability.tier == 0:
        if ability.scaling_bonus:
            formula = _append_term(formula, ability.scaling_bonus, cantrip_scaling_steps(character_level))
        return formula
    if ability.upcast_bonus:
        formula = _append_term(formula, ability.upcast_bonus, effective_tier - ability.tier)
    return formula
