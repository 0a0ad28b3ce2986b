from __future__ import annotations
import logging
import random
from typing import List, Optional

from .dice import roll_die
from .errors import BoundFormulaError, InsufficientResourceError, UnknownResourceError
from .expr import character_variables, eval_int
from .models import ActionTracker, Character, DicePoolInstance, ResourceInstance
from .schema_models import AbilityDefinition, FixedBound, FormulaBound, MAX_TIER, ResetCondition

logger = logging.getLogger(__name__)

class ResourceLedger:
    """
    Reads and mutates the resource side of one character: numeric resource pools,
    dice pools, hit points, the action tracker and spell tier access.

    Spends reject amounts above the current value; every other write is clamped to
    the resource's computed bounds.
    """

    def __init__(self, character: Character, rng: Optional[random.Random] = None):
        self.character = character
        self.rng = rng or random.Random()

    # ------- reads -------
    def get_current_character(self) -> Character:
        return self.character

    def get_abilities(self) -> List[AbilityDefinition]:
        return list(self.character.abilities)

    def get_tier_access(self) -> int:
        return max(0, min(MAX_TIER, self.character.tier_access))

    def has_resource(self, resource_id: str) -> bool:
        return self.character.get_resource(resource_id) is not None

    def get_resource_value(self, resource_id: str) -> int:
        rs = self.character.get_resource(resource_id)
        return rs.current if rs else 0

    def _bound_value(self, bound: FixedBound | FormulaBound) -> int:
        if isinstance(bound, FixedBound):
            return bound.value
        variables = character_variables(self.character.attributes.as_dict(), self.character.level)
        try:
            return eval_int(bound.expression, variables)
        except ZeroDivisionError as e:
            raise BoundFormulaError(bound.expression, "division by zero") from e
        except Exception as e:
            raise BoundFormulaError(bound.expression, str(e) or e.__class__.__name__) from e

    def resource_bounds(self, rs: ResourceInstance) -> tuple[int, int]:
        lo = self._bound_value(rs.definition.min_value)
        hi = self._bound_value(rs.definition.max_value)
        return lo, max(lo, hi)

    def get_resource_max(self, resource_id: str) -> int:
        rs = self._require(resource_id)
        return self.resource_bounds(rs)[1]

    def pool_capacity(self, pool: DicePoolInstance) -> int:
        return max(0, self._bound_value(pool.definition.max_dice))

    def formula_variables(self) -> dict[str, int]:
        """Variables visible to dice formulas: attributes, resource ids and LEVEL/LVL."""
        out = character_variables(self.character.attributes.as_dict(), self.character.level)
        for rs in self.character.resources:
            out[rs.definition.id] = rs.current
        return out

    def resources_summary(self) -> dict[str, str]:
        out: dict[str, str] = {}
        for rs in self.character.resources:
            _, hi = self.resource_bounds(rs)
            out[rs.definition.name] = f"{rs.current}/{hi}"
        for pool in self.character.dice_pools:
            dice = ", ".join(str(d) for d in pool.current_dice) or "-"
            out[pool.definition.name] = f"[{dice}] ({len(pool.current_dice)}/{self.pool_capacity(pool)} d{pool.definition.dice_size})"
        return out

    # ------- resource writes -------
    def _require(self, resource_id: str) -> ResourceInstance:
        rs = self.character.get_resource(resource_id)
        if rs is None:
            raise UnknownResourceError(resource_id)
        return rs

    def spend_resource(self, resource_id: str, amount: int) -> int:
        rs = self._require(resource_id)
        amount = int(amount)
        if amount < 0:
            raise ValueError("spend amount must be >= 0")
        if amount > rs.current:
            raise InsufficientResourceError(resource_id, amount, rs.current)
        lo, _ = self.resource_bounds(rs)
        rs.current = max(lo, rs.current - amount)
        logger.debug("spent %d %s (now %d)", amount, resource_id, rs.current)
        return rs.current

    def restore_resource(self, resource_id: str, amount: int) -> int:
        rs = self._require(resource_id)
        _, hi = self.resource_bounds(rs)
        rs.current = min(hi, rs.current + max(0, int(amount)))
        return rs.current

    def adjust_resource(self, resource_id: str, delta: int) -> Optional[int]:
        """Signed change clamped to bounds; None if the character has no such resource."""
        rs = self.character.get_resource(resource_id)
        if rs is None:
            return None
        lo, hi = self.resource_bounds(rs)
        rs.current = max(lo, min(hi, rs.current + int(delta)))
        return rs.current

    def set_resource(self, resource_id: str, value: int) -> int:
        rs = self._require(resource_id)
        lo, hi = self.resource_bounds(rs)
        rs.current = max(lo, min(hi, int(value)))
        return rs.current

    def reset_resources(self, condition: ResetCondition) -> list[str]:
        logs: list[str] = []
        for rs in self.character.resources:
            rd = rs.definition
            if rd.reset_condition != condition:
                continue
            lo, hi = self.resource_bounds(rs)
            if rd.reset_type == "to_max":
                rs.current = hi
            elif rd.reset_type == "to_zero":
                rs.current = max(lo, 0)
            else:
                rs.current = max(lo, min(hi, int(rd.reset_value or 0)))
            logs.append(f"[Res] {rd.name} reset to {rs.current}")
        for pool in self.character.dice_pools:
            pd = pool.definition
            if pd.reset_condition != condition:
                continue
            if pd.reset_type == "to_zero":
                pool.current_dice = []
            else:
                pool.current_dice = [roll_die(self.rng, pd.dice_size) for _ in range(self.pool_capacity(pool))]
            logs.append(f"[Pool] {pd.name} reset ({len(pool.current_dice)} dice)")
        return logs

    # ------- dice pools -------
    def add_dice(self, pool_id: str, count: int) -> Optional[List[int]]:
        pool = self.character.get_dice_pool(pool_id)
        if pool is None:
            return None
        room = max(0, self.pool_capacity(pool) - len(pool.current_dice))
        fresh = [roll_die(self.rng, pool.definition.dice_size) for _ in range(min(room, max(0, count)))]
        pool.current_dice.extend(fresh)
        return fresh

    def remove_dice(self, pool_id: str, count: int) -> Optional[List[int]]:
        pool = self.character.get_dice_pool(pool_id)
        if pool is None:
            return None
        n = min(len(pool.current_dice), max(0, count))
        removed = pool.current_dice[len(pool.current_dice) - n:] if n else []
        pool.current_dice = pool.current_dice[:len(pool.current_dice) - n]
        return removed

    # ------- hit points -------
    def apply_damage(self, amount: int) -> tuple[int, int]:
        """Temporary HP absorbs first. Returns (absorbed_by_temp, dealt_to_hp)."""
        hp = self.character.hit_points
        amount = max(0, int(amount))
        absorbed = min(hp.temporary, amount)
        hp.temporary -= absorbed
        before = hp.current
        hp.current = max(0, hp.current - (amount - absorbed))
        return absorbed, before - hp.current

    def heal(self, amount: int) -> int:
        hp = self.character.hit_points
        before = hp.current
        hp.current = min(hp.max, hp.current + max(0, int(amount)))
        return hp.current - before

    def set_temporary_hp(self, amount: int) -> int:
        self.character.hit_points.temporary = max(0, int(amount))
        return self.character.hit_points.temporary

    # ------- action economy -------
    def update_action_tracker(self, nxt: ActionTracker) -> ActionTracker:
        self.character.action_tracker = nxt
        return nxt

    def spend_actions(self, amount: int) -> ActionTracker:
        tracker = self.character.action_tracker
        return self.update_action_tracker(tracker.model_copy(update={"current": max(0, tracker.current - amount)}))

    def start_encounter(self) -> None:
        tracker = self.character.action_tracker
        self.character.in_encounter = True
        self.update_action_tracker(tracker.model_copy(update={"current": tracker.base + tracker.bonus}))

    def end_encounter(self) -> list[str]:
        self.character.in_encounter = False
        return self.reset_resources("encounter_end")
