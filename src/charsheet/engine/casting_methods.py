from __future__ import annotations
import logging
from abc import ABC, abstractmethod
from typing import Any, Mapping, Optional, Union

from .activity_log import ResourceSpend
from .casting_types import (
    CastingContext, CastingCost, CastingMethodType, CastingResult, ManaCastingOptions, SlotCastingOptions,
)
from .errors import CharsheetError, ErrorKind
from .schema_models import AbilityDefinition
from .spells import mana_cost, scaled_formula, slot_effective_tier

logger = logging.getLogger(__name__)

class CastingMethodHandler(ABC):
    """
    Strategy for one way of paying for an ability.

    `is_available` and `calculate_cost` only read the context's character.
    `cast` runs the fixed protocol below; each step aborts with a failure result
    before any later mutation:

      availability -> affordability -> action cost (in encounter) -> resource spend
      -> effective tier -> dice formula -> effects -> activity log
    """

    method_type: CastingMethodType

    @abstractmethod
    def is_available(self, context: CastingContext) -> bool: ...

    @abstractmethod
    def calculate_cost(self, context: CastingContext) -> CastingCost: ...

    @abstractmethod
    def get_display_name(self) -> str: ...

    @abstractmethod
    def get_description(self) -> str: ...

    @abstractmethod
    def default_options(self, ability: AbilityDefinition,
                        overrides: Optional[Mapping[str, Any]] = None) -> Union[ManaCastingOptions, SlotCastingOptions]: ...

    @abstractmethod
    def _spend_resource(self, context: CastingContext) -> Optional[ResourceSpend]:
        """Deduct this method's resource; None when the cast is free."""

    @abstractmethod
    def _effective_tier(self, context: CastingContext) -> int: ...

    def can_upcast(self, context: CastingContext) -> bool:
        return False

    def _accepts(self, context: CastingContext) -> bool:
        return context.options.method_type == self.method_type

    def _deduct_actions(self, context: CastingContext) -> Optional[CastingResult]:
        cost = context.ability.action_cost
        character = context.env.ledger.get_current_character()
        if cost <= 0 or not character.in_encounter:
            return None
        have = character.action_tracker.current
        if have < cost:
            return CastingResult.fail(ErrorKind.ACTION_SHORTFALL, f"Not enough actions (need {cost}, have {have})")
        context.env.ledger.spend_actions(cost)
        return None

    def cast(self, context: CastingContext) -> CastingResult:
        ability, env = context.ability, context.env
        if not self._accepts(context):
            return CastingResult.fail(ErrorKind.METHOD_UNAVAILABLE,
                                      f"Invalid casting method for {self.get_display_name()} handler")
        if not self.is_available(context):
            return CastingResult.fail(ErrorKind.METHOD_UNAVAILABLE, f"{self.get_display_name()} is not available")

        cost = self.calculate_cost(context)
        if not cost.can_afford:
            return CastingResult.fail(ErrorKind.INSUFFICIENT_RESOURCE,
                                      cost.warning_message or f"Cannot afford to cast using {self.get_display_name()}")

        shortfall = self._deduct_actions(context)
        if shortfall is not None:
            return shortfall

        try:
            spent = self._spend_resource(context)
        except CharsheetError as e:
            return CastingResult.fail(e.kind, str(e))

        tier = self._effective_tier(context)
        consequences: list[str] = []
        if spent:
            consequences.append(f"Spent {spent.amount} {spent.resource_name}")

        roll = None
        formula = scaled_formula(ability, tier, env.ledger.get_current_character().level)
        if formula:
            adv = context.options.advantage_level
            roll = env.dice.evaluate(formula, advantage_level=adv, variables=env.ledger.formula_variables())
            env.log.add_log_entry(env.log.create_dice_roll_entry(f"{ability.name} (Spell)", roll, adv))
            consequences.append(f"Rolled {roll.substituted_formula} = {roll.total}")

        effect_results = env.effects.apply_effects(ability.effects, ability.name) if ability.effects else []
        for res in effect_results:
            if not res.success:
                consequences.append(f"Effect {res.effect.type} failed: {res.error}")

        env.log.add_log_entry(env.log.create_spell_cast_entry(ability.name, ability.school, tier, ability.action_cost, spent))
        logger.info("cast %s via %s at tier %d", ability.id, self.method_type, tier)
        return CastingResult(success=True, effective_tier=tier, consequences=consequences,
                             roll=roll, effect_results=effect_results)

class ManaCastingHandler(CastingMethodHandler):
    method_type: CastingMethodType = "mana"

    def __init__(self, resource_id: str = "mana"):
        self.resource_id = resource_id

    def default_options(self, ability, overrides=None) -> ManaCastingOptions:
        data = {"target_tier": ability.tier}
        data.update({k: v for k, v in (overrides or {}).items() if k in ("target_tier", "advantage_level")})
        return ManaCastingOptions(**data)

    def _resource_name(self, context: CastingContext) -> str:
        rs = context.env.ledger.get_current_character().get_resource(self.resource_id)
        return rs.definition.name if rs else self.resource_id.capitalize()

    def is_available(self, context: CastingContext) -> bool:
        if not isinstance(context.options, ManaCastingOptions):
            return False
        ability, target = context.ability, context.options.target_tier
        if target > context.env.ledger.get_tier_access():
            return False
        if ability.tier == 0:
            return True
        if target < ability.tier:
            return False
        return ability.resource_cost is not None and ability.resource_cost.resource_id == self.resource_id

    def calculate_cost(self, context: CastingContext) -> CastingCost:
        if not isinstance(context.options, ManaCastingOptions):
            return CastingCost(can_afford=False, description="Invalid casting method")
        if context.ability.tier == 0:
            return CastingCost(can_afford=True, description=f"0 {self._resource_name(context).lower()}")
        total = mana_cost(context.ability, context.options.target_tier)
        current = context.env.ledger.get_resource_value(self.resource_id)
        name = self._resource_name(context)
        can_afford = current >= total
        return CastingCost(
            can_afford=can_afford,
            description=f"{total} {name}",
            warning_message=None if can_afford else f"Insufficient {name} ({current}/{total} required)",
            resource_cost=ResourceSpend(resource_id=self.resource_id, resource_name=name, amount=total),
        )

    def can_upcast(self, context: CastingContext) -> bool:
        return context.ability.tier > 0 and context.env.ledger.get_tier_access() > context.ability.tier

    def _target_tier(self, context: CastingContext) -> int:
        options = context.options
        if isinstance(options, ManaCastingOptions):
            return options.target_tier
        return context.ability.tier

    def _spend_resource(self, context: CastingContext) -> Optional[ResourceSpend]:
        if context.ability.tier == 0:
            return None
        amount = mana_cost(context.ability, self._target_tier(context))
        context.env.ledger.spend_resource(self.resource_id, amount)
        return ResourceSpend(resource_id=self.resource_id, resource_name=self._resource_name(context), amount=amount)

    def _effective_tier(self, context: CastingContext) -> int:
        if context.ability.tier == 0:
            return 0
        return self._target_tier(context)

    def get_display_name(self) -> str:
        return "Mana"

    def get_description(self) -> str:
        return "Traditional spellcasting using your magical resources (mana). Safe and predictable."

class SlotCastingHandler(CastingMethodHandler):
    method_type: CastingMethodType = "slot"

    def __init__(self, resource_id: str = "pilfered_power"):
        self.resource_id = resource_id

    def default_options(self, ability, overrides=None) -> SlotCastingOptions:
        data = {k: v for k, v in (overrides or {}).items() if k == "advantage_level"}
        return SlotCastingOptions(**data)

    def is_available(self, context: CastingContext) -> bool:
        if not isinstance(context.options, SlotCastingOptions):
            return False
        ledger = context.env.ledger
        if context.ability.tier > ledger.get_tier_access():
            return False
        if context.ability.tier == 0:
            return True
        return ledger.has_resource(self.resource_id)

    def calculate_cost(self, context: CastingContext) -> CastingCost:
        if not isinstance(context.options, SlotCastingOptions):
            return CastingCost(can_afford=False, description="Invalid casting method")
        if context.ability.tier == 0:
            return CastingCost(can_afford=True, description="0 slots (cantrip)")
        ledger = context.env.ledger
        rs = ledger.get_current_character().get_resource(self.resource_id)
        if rs is None:
            return CastingCost(can_afford=False, description=f"Missing {self.resource_id} resource",
                               warning_message=f"Character does not have the {self.resource_id} resource")
        can_afford = rs.current > 0
        tier = slot_effective_tier(context.ability, ledger.get_tier_access())
        return CastingCost(
            can_afford=can_afford,
            description=f"1 Slot (cast at tier {tier})" if can_afford else "No slots available",
            warning_message=None if can_afford else f"No {rs.definition.name} slots remaining",
            resource_cost=ResourceSpend(resource_id=self.resource_id, resource_name=rs.definition.name, amount=1),
        )

    def _spend_resource(self, context: CastingContext) -> Optional[ResourceSpend]:
        if context.ability.tier == 0:
            return None
        ledger = context.env.ledger
        ledger.spend_resource(self.resource_id, 1)
        rs = ledger.get_current_character().get_resource(self.resource_id)
        return ResourceSpend(resource_id=self.resource_id, resource_name=rs.definition.name if rs else self.resource_id, amount=1)

    def _effective_tier(self, context: CastingContext) -> int:
        return slot_effective_tier(context.ability, context.env.ledger.get_tier_access())

    def get_display_name(self) -> str:
        return "Slot Casting"

    def get_description(self) -> str:
        return "Channel power from your patron to cast spells at maximum tier. Limited uses before consequences."
