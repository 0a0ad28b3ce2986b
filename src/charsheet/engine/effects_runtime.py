from __future__ import annotations
import logging
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from .activity_log import ActivityLog
from .dice import DiceEvaluator
from .errors import CharsheetError
from .resources_runtime import ResourceLedger
from .schema_models import (
    DamageEffect, DicePoolChangeEffect, Effect, Expr, HealingEffect, ResourceChangeEffect, TempHPEffect,
)

logger = logging.getLogger(__name__)

class EffectResult(BaseModel):
    effect: Effect
    success: bool
    value: Optional[int] = None
    error: Optional[str] = None
    notes: List[str] = Field(default_factory=list)

def _formula_text(f: Expr) -> str:
    return str(f)

def _signed_preview(f: Expr) -> tuple[bool, str]:
    s = _formula_text(f).strip()
    if s.startswith("-"):
        return False, s[1:].strip()
    return True, s.lstrip("+").strip()

def get_effect_preview(effect: Effect) -> str:
    match effect:
        case DamageEffect(dice_formula=f):
            return f"Deal {f} damage"
        case HealingEffect(dice_formula=f):
            return f"Heal {f} HP"
        case TempHPEffect(dice_formula=f):
            return f"Gain {f} temporary HP"
        case ResourceChangeEffect(resource_id=rid, dice_formula=f):
            gain, amt = _signed_preview(f)
            return f"{'Gain' if gain else 'Lose'} {amt} {rid}"
        case DicePoolChangeEffect(pool_id=pid, dice_formula=f):
            add, amt = _signed_preview(f)
            return f"Add {amt} dice to {pid}" if add else f"Remove {amt} dice from {pid}"
    raise TypeError(f"unsupported effect: {effect!r}")

class EffectResolver:
    """
    Applies typed effects to the ledger's character. Every effect is evaluated and
    applied independently: a failure is reported in that effect's result and the
    remaining effects still run.
    """

    def __init__(self, ledger: ResourceLedger, dice: DiceEvaluator, log: Optional[ActivityLog] = None):
        self.ledger = ledger
        self.dice = dice
        self.log = log

    def _roll(self, formula: Expr) -> int:
        if isinstance(formula, int):
            return formula
        return self.dice.evaluate(formula, variables=self.ledger.formula_variables(),
                                  allow_criticals=False, allow_fumbles=False).total

    def apply_effects(self, effects: Sequence[Effect], source_label: str) -> List[EffectResult]:
        results: List[EffectResult] = []
        for effect in effects:
            try:
                res = self._apply_one(effect)
            except (CharsheetError, ValueError, TypeError) as e:
                logger.warning("effect %s from %s failed: %s", getattr(effect, "type", "?"), source_label, e)
                res = EffectResult(effect=effect, success=False, error=str(e))
            results.append(res)
            if self.log is not None:
                desc = f"{source_label}: {get_effect_preview(effect)}"
                if res.success and res.value is not None:
                    desc += f" ({res.value})"
                elif not res.success:
                    desc += f" failed: {res.error}"
                self.log.add_log_entry(self.log.create_effect_entry(
                    source_label, effect.type, res.value, res.success, desc))
        return results

    def _apply_one(self, effect: Effect) -> EffectResult:
        led = self.ledger
        match effect:
            case DamageEffect():
                value = max(0, self._roll(effect.dice_formula))
                absorbed, dealt = led.apply_damage(value)
                return EffectResult(effect=effect, success=True, value=value,
                                    notes=[f"{absorbed} absorbed by temporary HP", f"{dealt} damage taken"])
            case HealingEffect():
                value = max(0, self._roll(effect.dice_formula))
                healed = led.heal(value)
                return EffectResult(effect=effect, success=True, value=value, notes=[f"healed {healed}"])
            case TempHPEffect():
                value = max(0, self._roll(effect.dice_formula))
                led.set_temporary_hp(value)
                return EffectResult(effect=effect, success=True, value=value)
            case ResourceChangeEffect():
                value = self._roll(effect.dice_formula)
                now = led.adjust_resource(effect.resource_id, value)
                if now is None:
                    notes = [f"unknown resource {effect.resource_id} ignored"]
                else:
                    notes = [f"{effect.resource_id} now {now}"]
                return EffectResult(effect=effect, success=True, value=value, notes=notes)
            case DicePoolChangeEffect():
                value = self._roll(effect.dice_formula)
                if led.get_current_character().get_dice_pool(effect.pool_id) is None:
                    return EffectResult(effect=effect, success=False, value=value,
                                        error=f"Dice pool {effect.pool_id} not found")
                if value >= 0:
                    added = led.add_dice(effect.pool_id, value) or []
                    notes = [f"added {', '.join(str(d) for d in added) or 'nothing'}"]
                else:
                    removed = led.remove_dice(effect.pool_id, -value) or []
                    notes = [f"removed {', '.join(str(d) for d in removed) or 'nothing'}"]
                return EffectResult(effect=effect, success=True, value=value, notes=notes)
        raise TypeError(f"unsupported effect type: {getattr(effect, 'type', effect)!r}")
